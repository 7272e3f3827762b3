"""Error taxonomy shared by the transport, tools, agent and bridge."""


class SenseiError(Exception):
    """Base class for factorio-sensei failures."""


class TransportError(SenseiError):
    """The RCON channel failed: connection reset, closed socket, malformed frame."""


class NoPlayerError(SenseiError):
    """No player is connected to the game, so player-scoped queries cannot run."""

    def __init__(self, message: str = "No player connected"):
        super().__init__(message)


class LuaError(SenseiError):
    """A structured error embedded by the Lua side, e.g. an unknown recipe name."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DecodeError(SenseiError):
    """Response text did not match the shape the decoder expected."""


class AssistantError(SenseiError):
    """The completion backend failed to produce a reply."""
