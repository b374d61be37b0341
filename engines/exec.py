"""Engine entry point: picks a transport per call and streams its events"""
import logging
from contextlib import aclosing
from typing import AsyncIterator, Dict, Optional

import httpx

from core.options import ExecArgs
from engines.command_args import find_codex_path
from engines.http_engine import HttpTransport
from engines.process_engine import ProcessTransport
from engines.protocol import ExecTransport
from state.history import HistoryBackend, HistoryStore

logger = logging.getLogger(__name__)


class CodexExec:
    """
    Runs turns through the local codex binary or a remote Responses endpoint.

    Responsibilities:
    - Choose the transport for each call (remote iff ``base_url`` is set)
    - Own the history store the HTTP transport replays and commits to
    - Release transport resources on close
    """

    def __init__(
        self,
        executable_path: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        history: Optional[HistoryBackend] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.history = history if history is not None else HistoryStore()
        self._executable_path = executable_path
        self._env = env
        self._process: Optional[ProcessTransport] = None
        self.http = HttpTransport(self.history, env=env, transport=http_transport)

    @property
    def process(self) -> ProcessTransport:
        # Binary lookup is deferred so HTTP-only clients never need one
        if self._process is None:
            self._process = ProcessTransport(self._executable_path or find_codex_path(), env=self._env)
        return self._process

    def select_transport(self, args: ExecArgs) -> ExecTransport:
        if args.base_url:
            return self.http
        return self.process

    async def run(self, args: ExecArgs) -> AsyncIterator[str]:
        """Stream raw JSON event lines for one turn"""
        transport = self.select_transport(args)
        logger.debug(f"Running turn via {type(transport).__name__}")
        async with aclosing(transport.run(args)) as lines:
            async for line in lines:
                yield line

    async def close(self) -> None:
        await self.http.close()
        if self._process is not None:
            await self._process.close()
