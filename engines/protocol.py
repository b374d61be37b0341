"""ExecTransport protocol definition"""
from typing import AsyncIterator, Protocol

from core.options import ExecArgs


class ExecTransport(Protocol):
    """Unified interface for the process and HTTP transports"""

    def run(self, args: ExecArgs) -> AsyncIterator[str]:
        """
        Execute one turn and stream raw JSON event lines.

        Args:
            args: Fully resolved execution arguments

        Yields:
            str: One serialized NormalizedEvent per item, in source order
        """
        ...

    async def close(self) -> None:
        """Release long-lived resources held by the transport"""
        ...
