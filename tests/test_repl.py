from __future__ import annotations

from factorio_sensei.errors import AssistantError
from factorio_sensei.repl import STATUS_PROMPT, Repl


class ScriptedCoach:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.prompts: list[str] = []

    def prompt(self, text: str, history: list[dict]) -> str:
        self.prompts.append(text)
        if text == self.fail_on:
            raise AssistantError("rate limited")
        history.append({"role": "user", "content": text})
        history.append({"role": "assistant", "content": f"re: {text}"})
        return f"re: {text}"


def _session(lines, coach):
    feed = iter(lines)
    out: list[str] = []

    def read(_prompt: str) -> str:
        try:
            return next(feed)
        except StopIteration:
            raise EOFError from None

    repl = Repl(coach, input_fn=read, output=out.append)
    repl.run()
    return repl, out


def test_questions_go_to_coach_with_shared_history() -> None:
    coach = ScriptedCoach()
    repl, out = _session(["how is my power?", "", "and iron?"], coach)
    assert coach.prompts == ["how is my power?", "and iron?"]
    assert len(repl.history) == 4
    assert any("re: and iron?" in line for line in out)


def test_status_and_clear() -> None:
    coach = ScriptedCoach()
    repl, out = _session(["/status", "/clear"], coach)
    assert coach.prompts == [STATUS_PROMPT]
    assert repl.history == []
    assert "Conversation history cleared." in out


def test_quit_stops_reading() -> None:
    coach = ScriptedCoach()
    _session(["/quit", "never asked"], coach)
    assert coach.prompts == []


def test_help() -> None:
    _, out = _session(["/help"], ScriptedCoach())
    assert any("/status" in line for line in out)


def test_error_keeps_session_alive() -> None:
    coach = ScriptedCoach(fail_on="boom")
    repl, out = _session(["boom", "after"], coach)
    assert any("[Error] rate limited" in line for line in out)
    assert coach.prompts == ["boom", "after"]
    assert len(repl.history) == 2
