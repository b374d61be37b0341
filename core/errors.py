"""Error taxonomy for turn execution"""
from typing import Optional


class CodexBridgeError(Exception):
    """Base class for all bridge errors"""


class UntrustedDirectory(CodexBridgeError):
    """Working directory is not a git checkout and the check was not skipped"""

    def __init__(self, message: str = "Not inside a trusted directory"):
        super().__init__(message)


class ProcessStartFailure(CodexBridgeError):
    """The codex executable could not be launched"""


class ProcessIOUnavailable(CodexBridgeError):
    """The child process is missing a stdio pipe"""


class ProcessExitFailure(CodexBridgeError):
    """The child process exited with a non-zero code"""

    def __init__(self, exit_code: int, stderr: str):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Codex Exec exited with code {exit_code}: {stderr}")


class Cancelled(CodexBridgeError):
    """The caller's cancellation signal fired"""

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or "aborted"
        super().__init__(self.reason)


# The following describe HTTP-path failures. They are rendered into
# turn.failed events rather than raised.

class StreamDisconnected(CodexBridgeError):
    """Upstream stream ended or errored before the turn completed"""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"stream disconnected before completion: {detail}")


class MissingResponseBody(StreamDisconnected):
    def __init__(self):
        super().__init__("missing response body")


class HttpRequestFailure(CodexBridgeError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"request failed with status {status_code}: {body}")


class EventParseError(CodexBridgeError):
    """A stream line was not a recognizable event"""


class ThreadRunError(CodexBridgeError):
    """Raised by Thread.run() when the turn ends with turn.failed"""
