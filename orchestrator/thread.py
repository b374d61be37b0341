"""Thread layer - multi-turn conversations on top of CodexExec"""
import json
import logging
import shutil
import tempfile
from contextlib import aclosing, contextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from core.errors import ThreadRunError
from core.events import (
    AgentMessageItem,
    ItemCompletedEvent,
    ThreadEvent,
    ThreadItem,
    ThreadStartedEvent,
    TurnCompletedEvent,
    TurnFailedEvent,
    Usage,
    parse_event,
)
from core.options import CodexOptions, ExecArgs, ThreadOptions, TurnOptions
from core.telemetry import telemetry
from engines.exec import CodexExec

logger = logging.getLogger(__name__)

UserInput = Dict[str, str]
Input = Union[str, List[UserInput]]


class Turn(BaseModel):
    """Result of a completed turn"""
    items: List[ThreadItem] = Field(default_factory=list)
    final_response: str = ""
    usage: Optional[Usage] = None


def normalize_input(input: Input) -> Tuple[str, List[str]]:
    """Split structured input into prompt text and local image paths"""
    if isinstance(input, str):
        return input, []

    prompt_parts: List[str] = []
    images: List[str] = []
    for segment in input:
        kind = segment.get("type")
        if kind == "text":
            prompt_parts.append(segment["text"])
        elif kind == "local_image":
            images.append(segment["path"])
        else:
            raise ValueError(f"Unsupported input segment type: {kind!r}")
    return "\n\n".join(prompt_parts), images


@contextmanager
def output_schema_file(schema: Any) -> Iterator[Optional[str]]:
    """Write ``schema`` to a temporary file for the duration of one turn"""
    if schema is None:
        yield None
        return
    if not isinstance(schema, dict):
        raise ValueError("output_schema must be a plain JSON object")

    schema_dir = tempfile.mkdtemp(prefix="codex-output-schema-")
    schema_path = Path(schema_dir) / "schema.json"
    try:
        schema_path.write_text(json.dumps(schema), encoding="utf-8")
        yield str(schema_path)
    finally:
        shutil.rmtree(schema_dir, ignore_errors=True)


class Thread:
    """A conversation with the agent; one instance per thread id"""

    def __init__(
        self,
        codex_exec: CodexExec,
        options: CodexOptions,
        thread_options: ThreadOptions,
        thread_id: Optional[str] = None,
    ):
        self._exec = codex_exec
        self._options = options
        self._thread_options = thread_options
        self._id = thread_id

    @property
    def id(self) -> Optional[str]:
        """Thread id; populated once the first turn has started"""
        return self._id

    def _build_args(self, prompt: str, images: List[str], schema_path: Optional[str], turn_options: TurnOptions) -> ExecArgs:
        thread_options = self._thread_options
        return ExecArgs(
            input=prompt,
            base_url=self._options.base_url,
            api_key=self._options.api_key,
            thread_id=self._id,
            images=images,
            model=thread_options.model,
            sandbox_mode=thread_options.sandbox_mode,
            working_directory=thread_options.working_directory,
            additional_directories=thread_options.additional_directories,
            skip_git_repo_check=thread_options.skip_git_repo_check,
            output_schema_file=schema_path,
            model_reasoning_effort=thread_options.model_reasoning_effort,
            network_access_enabled=thread_options.network_access_enabled,
            web_search_enabled=thread_options.web_search_enabled,
            approval_policy=thread_options.approval_policy,
            include_progress=turn_options.include_progress,
            signal=turn_options.signal,
        )

    async def run_streamed(
        self,
        input: Input,
        turn_options: Optional[TurnOptions] = None,
    ) -> AsyncIterator[ThreadEvent]:
        """Run a turn and yield parsed events as they arrive"""
        turn_options = turn_options or TurnOptions()
        prompt, images = normalize_input(input)

        with output_schema_file(turn_options.output_schema) as schema_path:
            args = self._build_args(prompt, images, schema_path, turn_options)
            async with aclosing(self._exec.run(args)) as lines:
                async for line in lines:
                    event = parse_event(line)
                    if isinstance(event, ThreadStartedEvent):
                        self._id = event.thread_id
                    yield event

    async def run(
        self,
        input: Input,
        turn_options: Optional[TurnOptions] = None,
    ) -> Turn:
        """Run a turn to completion and collect its items"""
        turn = Turn()
        failure: Optional[TurnFailedEvent] = None

        async with telemetry.trace_task("turn.run", thread_id=self._id) as trace:
            async with aclosing(self.run_streamed(input, turn_options)) as events:
                async for event in events:
                    if isinstance(event, ThreadStartedEvent):
                        trace["thread_id"] = event.thread_id
                    elif isinstance(event, ItemCompletedEvent):
                        if isinstance(event.item, AgentMessageItem):
                            turn.final_response = event.item.text
                        turn.items.append(event.item)
                    elif isinstance(event, TurnCompletedEvent):
                        turn.usage = event.usage
                    elif isinstance(event, TurnFailedEvent):
                        failure = event
                        break

            if failure is not None:
                telemetry.log_event("turn.reported_failure", level="warning", thread_id=self._id, error=failure.error.message)
                raise ThreadRunError(failure.error.message)

        telemetry.record_usage(self._id, turn.usage)
        logger.info(f"Turn completed on thread {self._id} ({len(turn.items)} items)")
        return turn
