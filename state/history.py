"""Per-thread conversation history replayed into HTTP requests"""
import logging
from typing import Dict, List, Literal, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class ConversationMessage(BaseModel):
    """One exchanged message"""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    text: str


class HistoryBackend(Protocol):
    """Storage interface shared by the in-memory and SQLite stores"""

    async def get(self, thread_id: str) -> List[ConversationMessage]:
        ...

    async def commit(self, thread_id: str, messages: Sequence[ConversationMessage]) -> None:
        ...


def apply_limit(
    messages: Sequence[ConversationMessage],
    max_messages: Optional[int],
) -> List[ConversationMessage]:
    """Keep only the newest ``max_messages`` entries (no limit when None)"""
    messages = list(messages)
    if max_messages is not None and len(messages) > max_messages:
        return messages[-max_messages:]
    return messages


class HistoryStore:
    """In-memory history, one ordered message list per thread.

    Lists are replaced wholesale on commit and copied on read, so a reader
    never observes a partially applied turn.
    """

    def __init__(self, max_messages: Optional[int] = None):
        self.max_messages = max_messages
        self._threads: Dict[str, List[ConversationMessage]] = {}

    async def get(self, thread_id: str) -> List[ConversationMessage]:
        return list(self._threads.get(thread_id, []))

    async def commit(self, thread_id: str, messages: Sequence[ConversationMessage]) -> None:
        stored = apply_limit(messages, self.max_messages)
        self._threads[thread_id] = stored
        logger.debug(f"Committed {len(stored)} message(s) for thread {thread_id}")

    def __contains__(self, thread_id: str) -> bool:
        return thread_id in self._threads

    def __len__(self) -> int:
        return len(self._threads)
