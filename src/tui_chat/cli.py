"""Command-line entry point for the terminal chat client."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path
from typing import AsyncIterator

from tui_chat.app import ChatApp
from tui_chat.config import AppConfig, load_config_from_env
from tui_chat.demo import build_demo_client, run_chatter
from tui_chat.gateway_client import GatewayRemoteClient
from tui_chat.log_config import setup_logging
from tui_chat.remote import InMemoryRemoteClient, RemoteClient
from tui_chat.render import CursesRenderer
from tui_chat.terminal import TerminalInput, TerminalSession

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tui-chat", description="Terminal chat client")
    parser.add_argument("--base-url", default=None, help="Gateway base URL (env TUI_CHAT_BASE_URL)")
    parser.add_argument("--token", default=None, help="Session token (env TUI_CHAT_TOKEN)")
    parser.add_argument("--page-size", type=int, default=None, help="Messages per history page")
    parser.add_argument("--render-hz", type=float, default=None, help="Redraw rate")
    parser.add_argument("--log-file", type=Path, default=None, help="Log file path")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--no-mouse", dest="mouse", action="store_false", default=None, help="Disable mouse capture")
    parser.add_argument("--no-paste", dest="paste", action="store_false", default=None, help="Disable bracketed paste")
    parser.add_argument("--demo", action="store_true", default=None, help="Run against an offline in-memory service")
    return parser


def resolve_config(argv: list[str] | None = None) -> AppConfig:
    args = build_parser().parse_args(argv)
    config = load_config_from_env()
    return config.with_overrides(
        base_url=args.base_url,
        token=args.token,
        page_size=args.page_size,
        render_hz=args.render_hz,
        log_file=args.log_file,
        log_level=args.log_level.upper() if args.log_level else None,
        mouse=args.mouse,
        paste=args.paste,
        demo=args.demo,
    )


@contextlib.asynccontextmanager
async def _open_client(config: AppConfig) -> AsyncIterator[RemoteClient]:
    if config.demo:
        demo_client: InMemoryRemoteClient = build_demo_client()
        chatter = asyncio.ensure_future(run_chatter(demo_client))
        try:
            yield demo_client
        finally:
            chatter.cancel()
            await asyncio.gather(chatter, return_exceptions=True)
        return
    async with GatewayRemoteClient(config.base_url, config.token) as client:
        yield client


async def run(config: AppConfig) -> int:
    with TerminalSession(mouse=config.mouse, paste=config.paste) as session:
        if session.stdscr is None:
            raise RuntimeError("terminal session has no screen")
        async with _open_client(config) as client:
            app = ChatApp(
                client,
                TerminalInput(session, tick_s=config.tick_s, render_hz=config.render_hz),
                CursesRenderer(session.stdscr),
                page_size=config.page_size,
                on_suspend=session.suspend,
            )
            return await app.run()


def main(argv: list[str] | None = None) -> int:
    try:
        config = resolve_config(argv)
    except ValueError as exc:
        print(f"tui-chat: {exc}", file=sys.stderr)
        return 2
    setup_logging(config.log_file, config.log_level)
    logger.info("starting (demo=%s, base_url=%s)", config.demo, config.base_url)
    if not config.demo and not config.token:
        print("tui-chat: a session token is required (--token or TUI_CHAT_TOKEN); try --demo", file=sys.stderr)
        return 2
    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        return 130
