from __future__ import annotations

import pytest


class FakeRcon:
    """Stands in for SharedRcon: records commands and replays canned replies.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(self, replies=None, default: str = "") -> None:
        self.replies = list(replies or [])
        self.default = default
        self.commands: list[str] = []

    def execute(self, command: str) -> str:
        self.commands.append(command)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def close(self) -> None:
        pass


@pytest.fixture()
def fake_rcon():
    return FakeRcon()
