"""Codex CLI process transport"""
import asyncio
import logging
import os
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from core.cancellation import guarded
from core.errors import (
    ProcessExitFailure,
    ProcessIOUnavailable,
    ProcessStartFailure,
    UntrustedDirectory,
)
from core.options import ExecArgs
from engines.command_args import build_command_args

logger = logging.getLogger(__name__)

INTERNAL_ORIGINATOR_ENV = "CODEX_INTERNAL_ORIGINATOR_OVERRIDE"
PYTHON_SDK_ORIGINATOR = "codex_sdk_py"

# Large JSON lines (tool output) exceed asyncio's 64KB default
STREAM_LIMIT = 10 * 1024 * 1024


def check_trusted_directory(args: ExecArgs) -> None:
    """Refuse to run in a working directory that is not a git checkout"""
    if args.working_directory and not args.skip_git_repo_check:
        if not (Path(args.working_directory) / ".git").exists():
            raise UntrustedDirectory()


def resolve_originator(env: Optional[Dict[str, str]] = None) -> str:
    source = env if env is not None else os.environ
    return source.get(INTERNAL_ORIGINATOR_ENV) or PYTHON_SDK_ORIGINATOR


class ProcessTransport:
    """Runs one ``codex exec`` process per turn and relays its JSON lines"""

    def __init__(self, executable_path: str, env: Optional[Dict[str, str]] = None):
        self.executable_path = executable_path
        self.env_override = env

    def build_env(self, args: ExecArgs) -> Dict[str, str]:
        env = dict(self.env_override) if self.env_override is not None else os.environ.copy()

        if not env.get(INTERNAL_ORIGINATOR_ENV):
            env[INTERNAL_ORIGINATOR_ENV] = PYTHON_SDK_ORIGINATOR
        if args.base_url:
            env["OPENAI_BASE_URL"] = args.base_url
        if args.api_key:
            env["CODEX_API_KEY"] = args.api_key
        return env

    async def run(self, args: ExecArgs) -> AsyncIterator[str]:
        """Spawn codex, feed it the input and stream stdout lines"""
        check_trusted_directory(args)
        signal = args.signal
        if signal:
            signal.raise_if_aborted()

        command_args = build_command_args(args)
        if args.thread_id:
            logger.info(f"Resuming Codex thread: {args.thread_id}")

        try:
            process = await asyncio.create_subprocess_exec(
                self.executable_path,
                *command_args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.build_env(args),
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            logger.error(f"Failed to start Codex: {e}")
            raise ProcessStartFailure(f"Failed to start {self.executable_path}: {e}") from e

        logger.info(f"Codex process started: PID {process.pid}")
        stderr_chunks: List[bytes] = []
        stderr_task: Optional[asyncio.Task] = None

        try:
            if process.stdin is None:
                raise ProcessIOUnavailable("Child process has no stdin")
            if process.stdout is None:
                raise ProcessIOUnavailable("Child process has no stdout")

            if process.stderr is not None:
                stderr_task = asyncio.create_task(self._collect_stderr(process.stderr, stderr_chunks))

            try:
                process.stdin.write(args.input.encode())
                await guarded(process.stdin.drain(), signal)
            except (BrokenPipeError, ConnectionResetError) as e:
                # Child exited without reading input; its exit code reports why
                logger.warning(f"Codex closed stdin early: {e}")
            finally:
                process.stdin.close()

            while True:
                line = await guarded(process.stdout.readline(), signal)
                if not line:
                    break
                line_str = line.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line_str.strip():
                    continue
                logger.debug(f"Codex stdout: {line_str[:200]}")
                yield line_str

            exit_code = await guarded(process.wait(), signal)
            if stderr_task is not None:
                await guarded(stderr_task, signal)

            logger.info(f"Codex process completed: PID {process.pid} (code={exit_code})")
            if exit_code != 0:
                stderr_text = b"".join(stderr_chunks).decode("utf-8", errors="replace")
                raise ProcessExitFailure(exit_code, stderr_text)

        finally:
            if stderr_task is not None and not stderr_task.done():
                stderr_task.cancel()
            await self._terminate(process)

    async def _collect_stderr(self, stream: asyncio.StreamReader, chunks: List[bytes]) -> None:
        """Buffer stderr until EOF; only surfaced if the process fails"""
        while True:
            chunk = await stream.read(65536)
            if not chunk:
                break
            chunks.append(chunk)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        logger.warning(f"Killing Codex process: PID {process.pid}")
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    async def close(self) -> None:
        """Nothing persistent; processes live for one turn"""
