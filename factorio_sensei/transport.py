"""Sensei <-> Factorio transport: Lua queries and chat commands over one shared RCON session."""

import json
from dataclasses import dataclass, field

from factorio_sensei.errors import DecodeError, LuaError, NoPlayerError
from factorio_sensei.lua import NO_PLAYER

POLL_COMMAND = "/sensei_poll"
RESPOND_COMMAND = "/sensei_respond"

# What the mod prints when no chat messages are queued
_EMPTY_POLL = ("", "[]", "{}")


def wrap_json(snippet: str) -> str:
    """Envelope that makes Factorio serialize the snippet's return value to JSON."""
    return f"/c rcon.print(helpers.table_to_json({snippet}))"


def execute(rcon, snippet: str) -> str:
    """Send one snippet and return the raw reply text.

    `rcon` is a SharedRcon (or anything with a locking execute()); channel
    failures surface as TransportError and are not retried here.
    """
    return rcon.execute(wrap_json(snippet))


def classify_response(text: str) -> str:
    """Raise for an embedded Lua-side error; otherwise hand the text back unchanged.

    Text that is not JSON passes through, since some commands answer in free text.
    """
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text
    if not isinstance(parsed, dict) or "error" not in parsed:
        return text
    error = parsed["error"]
    if error == NO_PLAYER:
        raise NoPlayerError()
    raise LuaError(error if isinstance(error, str) else json.dumps(error))


def execute_lua_json(rcon, snippet: str) -> str:
    return classify_response(execute(rcon, snippet))


@dataclass(frozen=True)
class ChatMessage:
    """A queued in-game message from a player's /sensei command."""

    player: str
    message: str
    extra: dict = field(default_factory=dict, compare=False)


def parse_messages(text: str) -> list[ChatMessage]:
    trimmed = text.strip()
    if trimmed in _EMPTY_POLL:
        return []
    classify_response(trimmed)
    try:
        raw = json.loads(trimmed)
    except json.JSONDecodeError as e:
        raise DecodeError(f"poll reply is not JSON: {trimmed[:200]!r}") from e
    if not isinstance(raw, list):
        raise DecodeError(f"poll reply is not a list: {trimmed[:200]!r}")

    messages = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise DecodeError(f"poll entry is not an object: {entry!r}")
        player, message = entry.get("player"), entry.get("message")
        if not isinstance(player, str) or not isinstance(message, str):
            raise DecodeError(f"poll entry lacks player/message: {entry!r}")
        extra = {k: v for k, v in entry.items() if k not in ("player", "message")}
        messages.append(ChatMessage(player, message, extra))
    return messages


def poll_messages(rcon) -> list[ChatMessage]:
    return parse_messages(rcon.execute(POLL_COMMAND))


def send_response(rcon, message: str):
    rcon.execute(f"{RESPOND_COMMAND} {message}")
