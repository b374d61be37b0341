"""Shared fixtures: a scriptable fake codex binary and a fake Responses endpoint."""

import json
import os
import stat
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import pytest

from engines.process_engine import ProcessTransport

# ---------------------------------------------------------------------------
# Fake codex executable
# ---------------------------------------------------------------------------

FAKE_CODEX_SOURCE = '''
import json
import os
import sys
import time

data = sys.stdin.read()

argv = sys.argv[1:]
schema = None
if "--output-schema" in argv:
    with open(argv[argv.index("--output-schema") + 1]) as f:
        schema = json.load(f)

record = os.environ.get("FAKE_CODEX_RECORD")
if record:
    with open(record, "a") as f:
        f.write(json.dumps({
            "argv": argv,
            "stdin": data,
            "schema": schema,
            "originator": os.environ.get("CODEX_INTERNAL_ORIGINATOR_OVERRIDE"),
            "base_url": os.environ.get("OPENAI_BASE_URL"),
            "api_key": os.environ.get("CODEX_API_KEY"),
            "custom": os.environ.get("CUSTOM_VAR"),
        }) + "\\n")

for line in json.loads(os.environ.get("FAKE_CODEX_LINES", "[]")):
    sys.stdout.write(line + "\\n")
    sys.stdout.flush()

sys.stderr.write(os.environ.get("FAKE_CODEX_STDERR", ""))
sys.stderr.flush()

time.sleep(float(os.environ.get("FAKE_CODEX_SLEEP", "0")))
sys.exit(int(os.environ.get("FAKE_CODEX_EXIT", "0")))
'''


@dataclass
class FakeCodex:
    """Handle on the fake binary and the invocations it recorded."""

    path: str
    record_path: Path

    def env(
        self,
        lines: Iterable[str] = (),
        stderr: str = "",
        exit_code: int = 0,
        sleep: float = 0,
        **extra: str,
    ) -> dict[str, str]:
        env = dict(os.environ)
        env.pop("CODEX_INTERNAL_ORIGINATOR_OVERRIDE", None)
        env.update(
            FAKE_CODEX_LINES=json.dumps(list(lines)),
            FAKE_CODEX_STDERR=stderr,
            FAKE_CODEX_EXIT=str(exit_code),
            FAKE_CODEX_SLEEP=str(sleep),
            FAKE_CODEX_RECORD=str(self.record_path),
        )
        env.update(extra)
        return env

    def transport(self, **kwargs: Any) -> ProcessTransport:
        return ProcessTransport(self.path, env=self.env(**kwargs))

    @property
    def calls(self) -> list[dict[str, Any]]:
        if not self.record_path.exists():
            return []
        return [json.loads(line) for line in self.record_path.read_text().splitlines() if line]


@pytest.fixture
def fake_codex(tmp_path) -> FakeCodex:
    script = tmp_path / "codex"
    script.write_text(f"#!{sys.executable}\n{FAKE_CODEX_SOURCE}")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return FakeCodex(path=str(script), record_path=tmp_path / "calls.jsonl")


def cli_event(**payload: Any) -> str:
    return json.dumps(payload)


# ---------------------------------------------------------------------------
# Fake Responses endpoint
# ---------------------------------------------------------------------------


def sse(*events: dict[str, Any]) -> bytes:
    """Encode Responses events the way the API frames them."""
    return b"".join(
        f"event: {event['type']}\ndata: {json.dumps(event)}\n\n".encode() for event in events
    )


def response_started(response_id: str = "resp_mock") -> dict[str, Any]:
    return {"type": "response.created", "response": {"id": response_id}}


def assistant_message(text: str, item_id: str = "msg_mock") -> dict[str, Any]:
    return {
        "type": "response.output_item.done",
        "item": {
            "type": "message",
            "role": "assistant",
            "id": item_id,
            "content": [{"type": "output_text", "text": text}],
        },
    }


def response_completed(response_id: str = "resp_mock") -> dict[str, Any]:
    return {
        "type": "response.completed",
        "response": {
            "id": response_id,
            "usage": {
                "input_tokens": 42,
                "input_tokens_details": {"cached_tokens": 12},
                "output_tokens": 5,
                "output_tokens_details": None,
                "total_tokens": 47,
            },
        },
    }


def response_failed(message: str) -> dict[str, Any]:
    return {"type": "error", "error": {"code": "rate_limit_exceeded", "message": message}}


@dataclass
class RecordedRequest:
    url: str
    headers: httpx.Headers
    json: dict[str, Any]


@dataclass
class ResponsesProxy:
    """Serves queued responses and records every request it receives."""

    responses: list[Callable[[], httpx.Response]] = field(default_factory=list)
    requests: list[RecordedRequest] = field(default_factory=list)

    def queue_sse(self, body: bytes, status_code: int = 200) -> None:
        self.responses.append(
            lambda: httpx.Response(status_code, content=body, headers={"content-type": "text/event-stream"})
        )

    def queue(self, factory: Callable[[], httpx.Response]) -> None:
        self.responses.append(factory)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(
            RecordedRequest(
                url=str(request.url),
                headers=request.headers,
                json=json.loads(request.content),
            )
        )
        if not self.responses:
            return httpx.Response(500, text="no more queued responses")
        return self.responses.pop(0)()

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def responses_proxy() -> ResponsesProxy:
    return ResponsesProxy()
