from __future__ import annotations

import json

from factorio_sensei.telemetry import (
    SSEBroadcaster,
    Telemetry,
    emit_bridge_state,
    emit_chat,
    emit_tool_result,
)


def test_broadcast_reaches_every_subscriber() -> None:
    broadcaster = SSEBroadcaster()
    a, b = broadcaster.subscribe(), broadcaster.subscribe()
    Telemetry(sse=broadcaster).emit("chat", {"message": "hi"})

    for q in (a, b):
        event = json.loads(q.get_nowait())
        assert event["type"] == "chat"
        assert event["data"] == {"message": "hi"}
        assert "timestamp" in event


def test_full_subscriber_is_dropped() -> None:
    broadcaster = SSEBroadcaster()
    q = broadcaster.subscribe()
    for _ in range(q.maxsize + 1):
        broadcaster.broadcast({"type": "x"})
    assert broadcaster.client_count == 0


def test_unsubscribe() -> None:
    broadcaster = SSEBroadcaster()
    q = broadcaster.subscribe()
    broadcaster.unsubscribe(q)
    broadcaster.unsubscribe(q)
    assert broadcaster.client_count == 0


def test_helpers_accept_none() -> None:
    emit_chat(None, "player", "hi")
    emit_bridge_state(None, "degraded", 4)


def test_tool_result_is_truncated() -> None:
    broadcaster = SSEBroadcaster()
    q = broadcaster.subscribe()
    emit_tool_result(Telemetry(sse=broadcaster), "get_furnaces", "x" * 500)
    assert len(json.loads(q.get_nowait())["data"]["output"]) == 200
