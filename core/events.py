"""Normalized thread event types shared by every transport"""
import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from core.errors import EventParseError


class Usage(BaseModel):
    """Token accounting for a completed turn"""
    input_tokens: int = 0
    cached_input_tokens: int = 0
    output_tokens: int = 0


class ThreadError(BaseModel):
    """Failure details carried by turn.failed"""
    message: str


class AgentMessageItem(BaseModel):
    """Assistant text produced during a turn"""
    id: str
    type: Literal["agent_message"] = "agent_message"
    text: str


class ReasoningItem(BaseModel):
    """Reasoning summary emitted by the CLI"""
    id: str
    type: Literal["reasoning"] = "reasoning"
    text: str = ""


class GenericItem(BaseModel):
    """Any other item kind (command_execution, file_change, ...), fields kept as-is"""
    model_config = ConfigDict(extra="allow")

    id: str
    type: str


ThreadItem = Annotated[
    Union[AgentMessageItem, ReasoningItem, GenericItem],
    Field(union_mode="left_to_right"),
]


class ThreadEvent(BaseModel):
    """Base event type"""
    type: str

    def to_line(self) -> str:
        """Serialize to the single-line JSON form the CLI emits"""
        return self.model_dump_json()


class ThreadStartedEvent(ThreadEvent):
    type: Literal["thread.started"] = "thread.started"
    thread_id: str


class TurnStartedEvent(ThreadEvent):
    type: Literal["turn.started"] = "turn.started"


class ItemStartedEvent(ThreadEvent):
    type: Literal["item.started"] = "item.started"
    item: ThreadItem


class ItemUpdatedEvent(ThreadEvent):
    type: Literal["item.updated"] = "item.updated"
    item: ThreadItem


class ItemCompletedEvent(ThreadEvent):
    type: Literal["item.completed"] = "item.completed"
    item: ThreadItem


class TurnCompletedEvent(ThreadEvent):
    type: Literal["turn.completed"] = "turn.completed"
    usage: Usage = Field(default_factory=Usage)


class TurnFailedEvent(ThreadEvent):
    type: Literal["turn.failed"] = "turn.failed"
    error: ThreadError


class ThreadErrorEvent(ThreadEvent):
    """Unrecoverable stream error reported by the CLI"""
    type: Literal["error"] = "error"
    message: str


NormalizedEvent = Annotated[
    Union[
        ThreadStartedEvent,
        TurnStartedEvent,
        ItemStartedEvent,
        ItemUpdatedEvent,
        ItemCompletedEvent,
        TurnCompletedEvent,
        TurnFailedEvent,
        ThreadErrorEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter = TypeAdapter(NormalizedEvent)


def parse_event(line: str) -> ThreadEvent:
    """Parse one raw JSON line into a typed event"""
    try:
        return _event_adapter.validate_json(line)
    except ValidationError as e:
        raise EventParseError(f"Failed to parse item: {line}") from e


def turn_failed(message: str) -> str:
    return TurnFailedEvent(error=ThreadError(message=message)).to_line()


def coerce_token_count(value: Any) -> int:
    """Best-effort int conversion; anything unusable counts as zero"""
    if value is None or isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(count, 0)


def parse_usage(usage: Optional[Dict[str, Any]]) -> Usage:
    """Build Usage from a Responses API usage block"""
    if not isinstance(usage, dict):
        usage = {}
    details = usage.get("input_tokens_details") or {}
    cached = details.get("cached_tokens") if isinstance(details, dict) else None
    if cached is None:
        cached = usage.get("cached_tokens")
    return Usage(
        input_tokens=coerce_token_count(usage.get("input_tokens")),
        cached_input_tokens=coerce_token_count(cached),
        output_tokens=coerce_token_count(usage.get("output_tokens")),
    )


def dump_event(event: ThreadEvent) -> Dict[str, Any]:
    """JSON-compatible dict for printing or storage"""
    return json.loads(event.model_dump_json())
