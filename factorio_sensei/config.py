"""Environment-driven settings and .env loading."""

import os
from dataclasses import dataclass
from pathlib import Path

_TRUTHY = ("1", "true", "yes", "on")


def load_env_file(path: Path):
    """Load KEY=VALUE lines into os.environ. Variables already set win."""
    path = Path(path)
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, _, val = line.partition("=")
            key, val = key.strip(), val.strip().strip("'\"")
            if val and key not in os.environ:
                os.environ[key] = val


def parse_addr(addr: str) -> tuple[str, int]:
    """Split "host:port"."""
    host, sep, port = addr.rpartition(":")
    if not sep or not host:
        raise ValueError(f"RCON address must be host:port, got {addr!r}")
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"RCON port must be a number, got {port!r}") from None


@dataclass
class Settings:
    rcon_addr: str = "127.0.0.1:27015"
    rcon_password: str = "factorio"
    model: str | None = None
    bridge: bool = False
    poll_interval: float = 2.0
    wiki_dir: Path = Path("data/wiki")
    sse_port: int | None = None

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        sse_port = env.get("SENSEI_SSE_PORT")
        return cls(
            rcon_addr=env.get("FACTORIO_RCON_ADDR", defaults.rcon_addr),
            rcon_password=env.get("FACTORIO_RCON_PASS", defaults.rcon_password),
            model=env.get("FACTORIO_MODEL") or None,
            bridge=env.get("FACTORIO_BRIDGE", "").strip().lower() in _TRUTHY,
            poll_interval=_env_number(env, "SENSEI_POLL_INTERVAL", float, defaults.poll_interval),
            wiki_dir=Path(env.get("SENSEI_WIKI_DIR", defaults.wiki_dir)),
            sse_port=_env_number(env, "SENSEI_SSE_PORT", int, None) if sse_port else None,
        )


def _env_number(env, name: str, convert, default):
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return convert(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
