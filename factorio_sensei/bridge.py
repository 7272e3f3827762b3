"""In-game chat bridge.

Polls the sensei mod for queued `/sensei` chat messages, routes each one
through the coach with that player's own history, and posts the reply back
to game chat. Repeated poll failures switch the loop to a slower, degraded
interval until the next successful poll.
"""

import logging
import re
import threading

from factorio_sensei.errors import SenseiError
from factorio_sensei.telemetry import Telemetry, emit_bridge_state, emit_chat, emit_error
from factorio_sensei.transport import ChatMessage, poll_messages, send_response

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEGRADED_POLL_INTERVAL = 10.0
# Consecutive poll failures tolerated before switching to the degraded interval
MAX_QUIET_FAILURES = 3

APOLOGY = "Sorry, I encountered an error processing your question."

MAX_GAME_MESSAGE_BYTES = 1000
TRUNCATION_MARKER = "..."

_HEADER_RE = re.compile(r"^[ \t]*#{1,4}[ \t]+", re.MULTILINE)
_SPACES_RE = re.compile(r" {2,}")


def sanitize_for_game(text: str) -> str:
    """Flatten Claude's markdown into one line of plain game-chat text.

    Brackets become parentheses because Factorio parses [..] as rich text.
    The result is capped at MAX_GAME_MESSAGE_BYTES of UTF-8 without splitting
    a character, with TRUNCATION_MARKER appended when cut.
    """
    text = text.replace("```", "")
    text = text.replace("**", "").replace("__", "")
    text = text.replace("`", "")
    text = _HEADER_RE.sub("", text)
    text = text.replace("[", "(").replace("]", ")")

    lines = (line.strip() for line in text.splitlines())
    text = " | ".join(line for line in lines if line)
    text = _SPACES_RE.sub(" ", text)

    encoded = text.encode("utf-8")
    if len(encoded) > MAX_GAME_MESSAGE_BYTES:
        text = encoded[:MAX_GAME_MESSAGE_BYTES].decode("utf-8", errors="ignore") + TRUNCATION_MARKER
    return text.strip()


def in_game_prompt(msg: ChatMessage) -> str:
    return f"[In-game message from player {msg.player}] {msg.message}"


class Bridge:
    """Single-threaded polling loop; messages within a cycle are handled in order."""

    def __init__(self, rcon, coach, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 degraded_interval: float = DEGRADED_POLL_INTERVAL,
                 telemetry: Telemetry | None = None, sleep=None):
        self.rcon = rcon
        self.coach = coach
        self.poll_interval = poll_interval
        self.degraded_interval = degraded_interval
        self.telemetry = telemetry
        self.histories: dict[str, list[dict]] = {}
        self.consecutive_errors = 0
        self._stop = threading.Event()
        self._sleep = sleep or self._stop.wait

    @property
    def degraded(self) -> bool:
        return self.consecutive_errors > MAX_QUIET_FAILURES

    def next_interval(self) -> float:
        return self.degraded_interval if self.degraded else self.poll_interval

    def poll_once(self) -> bool:
        """Run one cycle. Returns False if the poll itself failed."""
        try:
            messages = poll_messages(self.rcon)
        except SenseiError as e:
            self._record_failure(e)
            return False

        if self.degraded:
            logger.info("Poll recovered after %d failures", self.consecutive_errors)
            emit_bridge_state(self.telemetry, "normal", 0)
        self.consecutive_errors = 0
        for msg in messages:
            self.handle_message(msg)
        return True

    def _record_failure(self, error: Exception):
        self.consecutive_errors += 1
        if self.consecutive_errors <= MAX_QUIET_FAILURES:
            logger.warning("Poll error: %s", error)
        elif self.consecutive_errors == MAX_QUIET_FAILURES + 1:
            logger.warning("Repeated errors, backing off to %gs intervals", self.degraded_interval)
            emit_bridge_state(self.telemetry, "degraded", self.consecutive_errors)

    def handle_message(self, msg: ChatMessage):
        """Answer one player message. Never raises: failures become an apology."""
        logger.info("%s: %s", msg.player, msg.message)
        emit_chat(self.telemetry, "player", msg.message, player=msg.player)
        history = self.histories.setdefault(msg.player, [])

        try:
            reply = sanitize_for_game(self.coach.prompt(in_game_prompt(msg), history))
        except Exception as e:
            logger.exception("Agent error for %s", msg.player)
            emit_error(self.telemetry, f"Agent error: {str(e)[:200]}")
            reply = APOLOGY
        else:
            emit_chat(self.telemetry, "agent", reply, player=msg.player)

        try:
            send_response(self.rcon, reply)
        except SenseiError as e:
            logger.warning("Failed to send response to %s: %s", msg.player, e)

    def clear_history(self, player: str | None = None):
        if player is None:
            self.histories.clear()
        else:
            self.histories.pop(player, None)

    def run(self):
        """Poll until stop() is called."""
        while not self._stop.is_set():
            self.poll_once()
            if self._stop.is_set():
                break
            self._sleep(self.next_interval())

    def stop(self):
        self._stop.set()


def start_bridge_thread(bridge: Bridge) -> threading.Thread:
    thread = threading.Thread(target=bridge.run, name="sensei-bridge", daemon=True)
    thread.start()
    return thread
