from __future__ import annotations

import pytest

from factorio_sensei.bridge import (
    APOLOGY,
    DEFAULT_POLL_INTERVAL,
    DEGRADED_POLL_INTERVAL,
    Bridge,
    sanitize_for_game,
)
from factorio_sensei.errors import AssistantError, TransportError
from factorio_sensei.transport import ChatMessage

from conftest import FakeRcon


class FakeCoach:
    def __init__(self, replies=None) -> None:
        self.replies = list(replies or [])
        self.prompts: list[tuple[str, int]] = []

    def prompt(self, text: str, history: list[dict]) -> str:
        self.prompts.append((text, len(history)))
        reply = self.replies.pop(0) if self.replies else "ok"
        if isinstance(reply, BaseException):
            raise reply
        history.append({"role": "user", "content": text})
        history.append({"role": "assistant", "content": reply})
        return reply


# ── sanitize_for_game ────────────────────────────────────────

def test_strips_bold_markers() -> None:
    assert sanitize_for_game("use **bold** text") == "use bold text"


def test_strips_code_fences() -> None:
    result = sanitize_for_game("before\n```lua\nprint('hi')\n```\nafter")
    assert "print('hi')" in result
    assert "```" not in result


def test_strips_inline_backticks() -> None:
    assert sanitize_for_game("use `iron-plate`") == "use iron-plate"


def test_strips_markdown_headers() -> None:
    assert sanitize_for_game("## Analysis") == "Analysis"
    assert sanitize_for_game("#### Deep") == "Deep"


def test_flattens_newlines() -> None:
    assert sanitize_for_game("line one\nline two\nline three") == "line one | line two | line three"


def test_strips_blank_lines() -> None:
    assert sanitize_for_game("first\n\n\nsecond") == "first | second"


def test_collapses_whitespace() -> None:
    assert sanitize_for_game("too   many   spaces") == "too many spaces"


def test_brackets_become_parentheses() -> None:
    assert sanitize_for_game("use [item=iron-plate]") == "use (item=iron-plate)"


def test_empty_input() -> None:
    assert sanitize_for_game("") == ""


def test_combined_markdown() -> None:
    result = sanitize_for_game("## Title\n\n**Bold**, use `code`.")
    assert "\n" not in result
    for marker in ("#", "*", "`"):
        assert marker not in result
    for word in ("Title", "Bold", "code"):
        assert word in result


def test_truncates_long_text() -> None:
    result = sanitize_for_game("a" * 1500)
    assert result.endswith("...")
    assert len(result) <= 1003


def test_truncates_multibyte_safely() -> None:
    result = sanitize_for_game("a" * 999 + "€" + "tail")
    assert result == "a" * 999 + "..."
    assert len(result.encode("utf-8")) <= 1003


def test_exactly_at_byte_limit_is_not_truncated() -> None:
    text = "b" * 1000
    assert sanitize_for_game(text) == text


# ── message handling ─────────────────────────────────────────

def test_handle_message_tags_prompt_and_sends_sanitized_reply() -> None:
    rcon = FakeRcon()
    coach = FakeCoach(["## Tip\n**Build** more [item=stone-furnace]"])
    bridge = Bridge(rcon, coach)

    bridge.handle_message(ChatMessage("nick", "what now?"))

    assert coach.prompts == [("[In-game message from player nick] what now?", 0)]
    assert rcon.commands == ["/sensei_respond Tip | Build more (item=stone-furnace)"]


def test_histories_are_per_player_and_ordered() -> None:
    coach = FakeCoach()
    bridge = Bridge(FakeRcon(), coach)

    bridge.handle_message(ChatMessage("alice", "one"))
    bridge.handle_message(ChatMessage("bob", "hi"))
    bridge.handle_message(ChatMessage("alice", "two"))

    assert [n for _, n in coach.prompts] == [0, 0, 2]
    alice = [turn["content"] for turn in bridge.histories["alice"] if turn["role"] == "user"]
    assert alice == [
        "[In-game message from player alice] one",
        "[In-game message from player alice] two",
    ]
    assert len(bridge.histories["bob"]) == 2


def test_agent_failure_sends_apology() -> None:
    rcon = FakeRcon()
    bridge = Bridge(rcon, FakeCoach([AssistantError("overloaded")]))

    bridge.handle_message(ChatMessage("nick", "hello"))

    assert rcon.commands == [f"/sensei_respond {APOLOGY}"]


def test_send_failure_does_not_raise() -> None:
    rcon = FakeRcon([TransportError("reset")])
    bridge = Bridge(rcon, FakeCoach())
    bridge.handle_message(ChatMessage("nick", "hello"))
    assert len(rcon.commands) == 1


def test_clear_history() -> None:
    bridge = Bridge(FakeRcon(), FakeCoach())
    bridge.handle_message(ChatMessage("alice", "a"))
    bridge.handle_message(ChatMessage("bob", "b"))

    bridge.clear_history("alice")
    assert set(bridge.histories) == {"bob"}
    bridge.clear_history()
    assert bridge.histories == {}


def test_poll_once_processes_messages_in_order() -> None:
    rcon = FakeRcon([
        '[{"player":"alice","message":"1"},{"player":"bob","message":"2"}]',
    ])
    coach = FakeCoach(["first", "second"])
    bridge = Bridge(rcon, coach)

    assert bridge.poll_once() is True
    assert rcon.commands == [
        "/sensei_poll",
        "/sensei_respond first",
        "/sensei_respond second",
    ]


# ── backoff ──────────────────────────────────────────────────

def _run_cycles(replies, cycles: int) -> tuple[Bridge, list[float]]:
    rcon = FakeRcon(replies, default="[]")
    sleeps: list[float] = []

    def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) >= cycles:
            bridge.stop()

    bridge = Bridge(rcon, FakeCoach(), sleep=fake_sleep)
    bridge.run()
    return bridge, sleeps


def test_backoff_after_fourth_failure_and_recovery() -> None:
    failures = [TransportError("down") for _ in range(4)]
    bridge, sleeps = _run_cycles(failures + ["[]", "[]"], cycles=6)

    normal, degraded = DEFAULT_POLL_INTERVAL, DEGRADED_POLL_INTERVAL
    assert sleeps == [normal, normal, normal, degraded, normal, normal]
    assert bridge.consecutive_errors == 0


def test_three_failures_stay_normal() -> None:
    bridge, sleeps = _run_cycles([TransportError("x")] * 3, cycles=3)
    assert sleeps == [DEFAULT_POLL_INTERVAL] * 3
    assert not bridge.degraded


def test_failures_keep_degraded_interval() -> None:
    bridge, sleeps = _run_cycles([TransportError("x")] * 7, cycles=7)
    assert sleeps[3:] == [DEGRADED_POLL_INTERVAL] * 4
    assert bridge.consecutive_errors == 7


@pytest.mark.parametrize("bad_reply", ['{"error":"no_player"}', "Unknown command", '{"error":"x"}'])
def test_poll_errors_count_as_failures(bad_reply: str) -> None:
    bridge = Bridge(FakeRcon([bad_reply]), FakeCoach())
    assert bridge.poll_once() is False
    assert bridge.consecutive_errors == 1


def test_stop_before_run_exits_immediately() -> None:
    rcon = FakeRcon(default="[]")
    bridge = Bridge(rcon, FakeCoach(), sleep=lambda s: None)
    bridge.stop()
    bridge.run()
    assert rcon.commands == []
