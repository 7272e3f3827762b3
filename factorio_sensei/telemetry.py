"""Telemetry bus: bridge and agent events streamed to local SSE clients."""

import json
import queue
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

_CLIENT_BACKLOG = 200
_KEEPALIVE_SECONDS = 15


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


class SSEBroadcaster:
    """Fans events out to per-client queues. Slow clients that fill up are dropped."""

    def __init__(self):
        self._clients: list[queue.Queue] = []
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=_CLIENT_BACKLOG)
        with self._lock:
            self._clients.append(q)
        return q

    def unsubscribe(self, q: queue.Queue):
        with self._lock:
            if q in self._clients:
                self._clients.remove(q)

    def broadcast(self, event: dict):
        data = json.dumps(event, separators=(",", ":"))
        with self._lock:
            for q in list(self._clients):
                try:
                    q.put_nowait(data)
                except queue.Full:
                    self._clients.remove(q)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)


class _SSEHandler(BaseHTTPRequestHandler):
    broadcaster: SSEBroadcaster

    def do_GET(self):
        if self.path == "/events":
            self._stream()
        elif self.path == "/health":
            body = json.dumps({"status": "ok", "clients": self.broadcaster.client_count})
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            self.wfile.write(body.encode())
        else:
            self.send_response(404)
            self.end_headers()

    def _stream(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.send_header("Cache-Control", "no-cache")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        q = self.broadcaster.subscribe()
        try:
            while True:
                try:
                    chunk = f"data: {q.get(timeout=_KEEPALIVE_SECONDS)}\n\n".encode()
                except queue.Empty:
                    chunk = b": keepalive\n\n"
                self.wfile.write(chunk)
                self.wfile.flush()
        except OSError:
            # client went away
            pass
        finally:
            self.broadcaster.unsubscribe(q)

    def log_message(self, format, *args):
        pass


def start_sse_server(broadcaster: SSEBroadcaster, port: int = 8088,
                     host: str = "127.0.0.1") -> ThreadingHTTPServer:
    handler = type("SenseiSSEHandler", (_SSEHandler,), {"broadcaster": broadcaster})
    server = ThreadingHTTPServer((host, port), handler)
    server.daemon_threads = True
    threading.Thread(target=server.serve_forever, name="sensei-sse", daemon=True).start()
    return server


class Telemetry:
    """Event bus. Every event gets a type, a data payload and a UTC timestamp."""

    def __init__(self, sse: SSEBroadcaster | None = None):
        self.sse = sse

    def emit(self, event_type: str, data: dict):
        event = {"type": event_type, "data": data, "timestamp": _timestamp()}
        if self.sse:
            self.sse.broadcast(event)


# Helpers: all safe to call with telemetry=None

def emit_chat(telemetry: Telemetry | None, role: str, message: str, player: str | None = None):
    if telemetry:
        telemetry.emit("chat", {"role": role, "message": message, "player": player})


def emit_tool_call(telemetry: Telemetry | None, tool: str, input_data: dict):
    if telemetry:
        telemetry.emit("tool_call", {"tool": tool, "input": input_data})


def emit_tool_result(telemetry: Telemetry | None, tool: str, output: str):
    if telemetry:
        telemetry.emit("tool_result", {"tool": tool, "output": output[:200]})


def emit_error(telemetry: Telemetry | None, message: str):
    if telemetry:
        telemetry.emit("error", {"message": message})


def emit_bridge_state(telemetry: Telemetry | None, mode: str, consecutive_errors: int):
    if telemetry:
        telemetry.emit("bridge", {"mode": mode, "consecutive_errors": consecutive_errors})
