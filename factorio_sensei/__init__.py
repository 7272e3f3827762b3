"""Factorio Sensei: read-only game-state tools and an in-game chat bridge for Claude."""

from factorio_sensei.errors import (
    AssistantError,
    DecodeError,
    LuaError,
    NoPlayerError,
    SenseiError,
    TransportError,
)
from factorio_sensei.rcon import RCONClient, SharedRcon
from factorio_sensei.transport import execute_lua_json

__all__ = [
    "AssistantError",
    "DecodeError",
    "LuaError",
    "NoPlayerError",
    "RCONClient",
    "SenseiError",
    "SharedRcon",
    "TransportError",
    "execute_lua_json",
]

__version__ = "0.1.0"
