"""
Factorio Sensei

Connects to a Factorio server over RCON and lets Claude answer questions
about the running game using read-only state queries. With --bridge, players
can also ask in-game via the sensei mod's /sensei chat command.

Usage:
    factorio-sensei [--addr 127.0.0.1:27015] [--password factorio] [--bridge] ...
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from factorio_sensei.agent import DEFAULT_MODEL, build_coach
from factorio_sensei.bridge import Bridge, start_bridge_thread
from factorio_sensei.config import Settings, load_env_file, parse_addr
from factorio_sensei.errors import TransportError
from factorio_sensei.knowledge import load_wiki_articles
from factorio_sensei.rcon import RCONClient, SharedRcon
from factorio_sensei.repl import Repl
from factorio_sensei.telemetry import SSEBroadcaster, Telemetry, start_sse_server


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="factorio-sensei",
        description="AI coaching copilot for Factorio 2.x",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--addr", default=settings.rcon_addr,
                        help="RCON server address (host:port), env FACTORIO_RCON_ADDR")
    parser.add_argument("--password", default=settings.rcon_password,
                        help="RCON password, env FACTORIO_RCON_PASS")
    parser.add_argument("--model", default=settings.model,
                        help=f"Claude model override (default model: {DEFAULT_MODEL})")
    parser.add_argument("--bridge", action=argparse.BooleanOptionalAction, default=settings.bridge,
                        help="In-game chat bridge (requires the sensei mod), env FACTORIO_BRIDGE")
    parser.add_argument("--poll-interval", type=float, default=settings.poll_interval,
                        help="Seconds between bridge polls")
    parser.add_argument("--wiki-dir", type=Path, default=settings.wiki_dir,
                        help="Directory of .md knowledge articles")
    parser.add_argument("--sse-port", type=int, default=settings.sse_port,
                        help="Serve telemetry events over SSE on this port")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def build_telemetry(port: int | None) -> Telemetry | None:
    if port is None:
        return None
    broadcaster = SSEBroadcaster()
    try:
        start_sse_server(broadcaster, port)
    except OSError as e:
        print(f"  SSE server:  failed to start ({e})")
        return None
    print(f"  SSE server:  http://localhost:{port}/events")
    return Telemetry(sse=broadcaster)


def load_articles(wiki_dir: Path) -> list[str]:
    if not wiki_dir.is_dir():
        return []
    try:
        return load_wiki_articles(wiki_dir)
    except OSError as e:
        print(f"Warning: could not load knowledge articles ({e})")
        return []


def main(argv=None):
    load_env_file(Path.cwd() / ".env")
    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    args = build_parser(settings).parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(name)s] %(message)s",
    )

    if not os.environ.get("ANTHROPIC_API_KEY"):
        print("Error: ANTHROPIC_API_KEY not set.\n", file=sys.stderr)
        print("Get your API key at: https://console.anthropic.com/settings/keys\n", file=sys.stderr)
        print("Then either:", file=sys.stderr)
        print("  export ANTHROPIC_API_KEY=sk-ant-...", file=sys.stderr)
        print("  or create a .env file with: ANTHROPIC_API_KEY=sk-ant-...", file=sys.stderr)
        sys.exit(1)

    try:
        host, port = parse_addr(args.addr)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    print("Factorio Sensei")
    print(f"  RCON:        {host}:{port}")
    print(f"  Model:       {args.model or DEFAULT_MODEL}")

    print("\nConnecting to Factorio RCON...")
    try:
        rcon = SharedRcon(RCONClient(host, port, args.password))
    except TransportError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print("RCON connected!")

    articles = load_articles(args.wiki_dir)
    print(f"Loaded {len(articles)} knowledge article(s).")

    telemetry = build_telemetry(args.sse_port)
    coach = build_coach(rcon, model=args.model, articles=articles, telemetry=telemetry)

    bridge = None
    if args.bridge:
        bridge = Bridge(rcon, coach, poll_interval=args.poll_interval, telemetry=telemetry)
        start_bridge_thread(bridge)
        print("In-game /sensei bridge enabled.")

    print("Type /help for commands.\n")
    try:
        Repl(coach).run()
    finally:
        if bridge:
            bridge.stop()
        rcon.close()
        print("Done.")
