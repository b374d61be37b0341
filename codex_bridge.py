#!/usr/bin/env python3
"""Codex Bridge - client entry point and command-line runner"""
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import httpx

from core.errors import CodexBridgeError
from core.events import TurnFailedEvent, dump_event
from core.options import BridgeConfig, CodexOptions, ThreadOptions, load_config
from core.telemetry import setup_logging
from engines.exec import CodexExec
from orchestrator.thread import Thread
from state.history import HistoryBackend, HistoryStore
from state.persistence import SqliteHistoryStore

logger = logging.getLogger(__name__)


class Codex:
    """Main client: creates threads that share one engine and history store"""

    def __init__(
        self,
        options: Optional[CodexOptions] = None,
        history: Optional[HistoryBackend] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.options = options or CodexOptions()
        self.exec = CodexExec(
            executable_path=self.options.codex_path_override,
            env=self.options.env,
            history=history,
            http_transport=http_transport,
        )

    def start_thread(self, options: Optional[ThreadOptions] = None) -> Thread:
        """Begin a new conversation; its id is assigned by the first turn"""
        return Thread(self.exec, self.options, options or ThreadOptions())

    def resume_thread(self, thread_id: str, options: Optional[ThreadOptions] = None) -> Thread:
        """Continue a conversation by id"""
        logger.info(f"Resuming thread {thread_id}")
        return Thread(self.exec, self.options, options or ThreadOptions(), thread_id=thread_id)

    async def close(self):
        await self.exec.close()

    async def __aenter__(self) -> "Codex":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def build_history(config: BridgeConfig) -> HistoryBackend:
    """History backend selected by the ``history`` config section"""
    if config.history.sqlite_path:
        return SqliteHistoryStore(Path(config.history.sqlite_path), max_messages=config.history.max_messages)
    return HistoryStore(max_messages=config.history.max_messages)


async def main(argv: list) -> int:
    """Run one prompt and print every event as a JSON line"""
    if len(argv) < 2:
        print("Usage: codex_bridge.py <prompt> [config.yaml]", file=sys.stderr)
        return 1

    prompt = argv[1]
    config_path = Path(argv[2]) if len(argv) > 2 else None
    if config_path and not config_path.exists():
        print(f"Config file not found: {config_path}", file=sys.stderr)
        return 1

    config = load_config(config_path)
    setup_logging(config.log_level)

    history = build_history(config)
    exit_code = 0
    async with Codex(config.codex, history=history) as client:
        thread = client.start_thread(config.thread)
        try:
            async for event in thread.run_streamed(prompt):
                print(json.dumps(dump_event(event)), flush=True)
                if isinstance(event, TurnFailedEvent):
                    exit_code = 1
        except CodexBridgeError as e:
            logger.error(f"Turn failed: {e}")
            exit_code = 1
        finally:
            if isinstance(history, SqliteHistoryStore):
                await history.close()

    return exit_code


def run():
    """Console script entry"""
    try:
        sys.exit(asyncio.run(main(sys.argv)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    run()
