"""Source RCON protocol client for Factorio and the lock that serializes access to it."""

import socket
import struct
import threading

from factorio_sensei.errors import TransportError

# id + type + two NUL terminators
_MIN_PACKET_SIZE = 10


class RCONClient:
    """Minimal Source RCON protocol client for Factorio.

    A broken connection is not re-established here: every channel failure
    surfaces as TransportError and the caller decides what to do.
    """

    SERVERDATA_AUTH = 3
    SERVERDATA_EXECCOMMAND = 2

    def __init__(self, host: str, port: int, password: str,
                 timeout: float = 30, connect: bool = True):
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout
        self._request_id = 0
        self.sock = None
        if connect:
            self.connect()

    def connect(self):
        try:
            self.sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise TransportError(f"cannot reach RCON at {self.host}:{self.port}: {e}") from e
        self._authenticate()

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _send_packet(self, sock: socket.socket, packet_type: int, body: str) -> int:
        req_id = self._next_id()
        body_bytes = body.encode("utf-8")
        size = 4 + 4 + len(body_bytes) + 1 + 1
        packet = struct.pack("<iii", size, req_id, packet_type) + body_bytes + b"\x00\x00"
        sock.sendall(packet)
        return req_id

    def _recv_packet(self, sock: socket.socket) -> tuple[int, int, str]:
        (size,) = struct.unpack("<i", self._recv_bytes(sock, 4))
        if size < _MIN_PACKET_SIZE:
            raise TransportError(f"malformed RCON frame (size {size})")
        data = self._recv_bytes(sock, size)
        req_id, pkt_type = struct.unpack("<ii", data[:8])
        body = data[8:-2].decode("utf-8", errors="replace")
        return req_id, pkt_type, body

    @staticmethod
    def _recv_bytes(sock: socket.socket, n: int) -> bytes:
        buf = b""
        while len(buf) < n:
            chunk = sock.recv(n - len(buf))
            if not chunk:
                raise TransportError("RCON connection closed")
            buf += chunk
        return buf

    def _authenticate(self):
        try:
            self._send_packet(self.sock, self.SERVERDATA_AUTH, self.password)
            # Factorio sends a single auth response (not two like Source engine)
            req_id, _, _ = self._recv_packet(self.sock)
        except OSError as e:
            self.close()
            raise TransportError(f"RCON authentication failed: {e}") from e
        if req_id == -1:
            self.close()
            raise TransportError("RCON authentication failed: wrong password")

    def execute(self, command: str) -> str:
        """Run one command and return its reply body.

        Any failure closes the connection: a late reply to a timed-out
        command would otherwise be read as the answer to the next one.
        """
        sock = self.sock
        if sock is None:
            raise TransportError("RCON client is not connected")
        try:
            sent_id = self._send_packet(sock, self.SERVERDATA_EXECCOMMAND, command)
            req_id, _, body = self._recv_packet(sock)
        except OSError as e:
            self.close()
            raise TransportError(f"RCON request failed: {e}") from e
        except TransportError:
            self.close()
            raise
        if req_id != sent_id:
            self.close()
            raise TransportError(f"RCON reply id {req_id} does not match request id {sent_id}")
        return body

    def close(self):
        sock, self.sock = self.sock, None
        if sock is None:
            return
        try:
            # Wakes a recv() blocked in another thread
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()


class SharedRcon:
    """One RCON connection shared by the REPL, the bridge and every tool.

    The lock is held for the whole request/response round trip, so exactly
    one command is in flight and replies are never matched to the wrong
    request. Duck-type compatible with RCONClient.
    """

    def __init__(self, rcon: RCONClient, lock=None):
        self._rcon = rcon
        self._lock = lock or threading.Lock()

    def execute(self, command: str) -> str:
        with self._lock:
            return self._rcon.execute(command)

    def close(self):
        # Not under the lock: shutting the socket down unblocks an in-flight execute.
        self._rcon.close()
