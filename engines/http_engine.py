"""Responses API transport over streaming HTTP"""
import json
import logging
import uuid
from contextlib import aclosing
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from core.cancellation import guarded
from core.errors import HttpRequestFailure, MissingResponseBody, StreamDisconnected
from core.events import (
    AgentMessageItem,
    ItemCompletedEvent,
    ItemStartedEvent,
    ThreadStartedEvent,
    TurnCompletedEvent,
    TurnStartedEvent,
    parse_usage,
    turn_failed,
)
from core.options import ExecArgs
from engines.command_args import build_request_config
from engines.process_engine import check_trusted_directory, resolve_originator
from engines.sse import iter_sse_events
from state.history import ConversationMessage, HistoryBackend

logger = logging.getLogger(__name__)

OUTPUT_SCHEMA_NAME = "codex_output_schema"
DEFAULT_TIMEOUT = httpx.Timeout(600.0, connect=10.0)


def new_thread_id() -> str:
    return f"thread_{uuid.uuid4()}"


def load_output_schema(path: Optional[str]) -> Optional[Any]:
    """Parsed schema file contents, or None when no readable file was given"""
    if not path or not Path(path).exists():
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def build_request_body(
    args: ExecArgs,
    history: List[ConversationMessage],
) -> Dict[str, Any]:
    """Request payload replaying ``history`` before the new user input"""
    input_entries = [
        {
            "role": entry.role,
            "content": [
                {
                    "type": "output_text" if entry.role == "assistant" else "input_text",
                    "text": entry.text,
                }
            ],
        }
        for entry in history
    ]
    input_entries.append({
        "role": "user",
        "content": [{"type": "input_text", "text": args.input}],
    })

    body: Dict[str, Any] = {"input": input_entries}
    if args.model:
        body["model"] = args.model

    schema = load_output_schema(args.output_schema_file)
    if schema is not None:
        body["text"] = {
            "format": {
                "name": OUTPUT_SCHEMA_NAME,
                "type": "json_schema",
                "strict": True,
                "schema": schema,
            }
        }

    if args.images:
        body["images"] = list(args.images)

    config = build_request_config(args)
    if config:
        body["config"] = config
    return body


def _output_item_text(item: Any) -> str:
    if not isinstance(item, dict):
        return ""
    content = item.get("content")
    if not isinstance(content, list) or not content or not isinstance(content[0], dict):
        return ""
    text = content[0].get("text")
    if text is None:
        return ""
    return text if isinstance(text, str) else str(text)


class HttpTransport:
    """POSTs the reconstructed conversation to ``<base_url>/responses``"""

    def __init__(
        self,
        history: HistoryBackend,
        env: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ):
        self.history = history
        self.env_override = env
        self._transport = transport
        self._timeout = timeout
        self._http: Optional[httpx.AsyncClient] = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
        return self._http

    def build_headers(self, args: ExecArgs) -> Dict[str, str]:
        headers = {
            "content-type": "application/json",
            "originator": resolve_originator(self.env_override),
        }
        if args.api_key:
            headers["authorization"] = f"Bearer {args.api_key}"
        return headers

    async def run(self, args: ExecArgs) -> AsyncIterator[str]:
        """Stream one turn, synthesizing the CLI's event vocabulary"""
        check_trusted_directory(args)
        signal = args.signal
        if signal:
            signal.raise_if_aborted()

        thread_id = args.thread_id or new_thread_id()
        history = await self.history.get(thread_id)
        body = build_request_body(args, history)
        pending = [*history, ConversationMessage(role="user", text=args.input)]

        yield ThreadStartedEvent(thread_id=thread_id).to_line()
        yield TurnStartedEvent().to_line()

        url = f"{args.base_url.rstrip('/')}/responses"
        logger.info(f"POST {url} (thread={thread_id}, history={len(history)})")

        client = self._client()
        request = client.build_request("POST", url, json=body, headers=self.build_headers(args))
        try:
            response = await guarded(client.send(request, stream=True), signal)
        except httpx.HTTPError as e:
            logger.error(f"Request to {url} failed: {e}")
            yield turn_failed(str(StreamDisconnected(str(e) or type(e).__name__)))
            return

        completed = False
        failed = False
        try:
            if not response.is_success:
                try:
                    error_body = (await guarded(response.aread(), signal)).decode("utf-8", errors="replace")
                except httpx.HTTPError:
                    error_body = "unexpected error while reading response body"
                logger.warning(f"Responses API returned {response.status_code}")
                yield turn_failed(str(HttpRequestFailure(response.status_code, error_body)))
                return

            if response.status_code == 204 or response.headers.get("content-length") == "0":
                yield turn_failed(str(MissingResponseBody()))
                return

            assistant_count = 0
            async with aclosing(iter_sse_events(response.aiter_bytes(), signal)) as events:
                async for event in events:
                    if not isinstance(event, dict):
                        logger.warning(f"Skipping non-object SSE payload: {event!r:.100}")
                        continue
                    event_type = event.get("type")

                    if event_type == "response.output_item.done":
                        text = _output_item_text(event.get("item"))
                        pending.append(ConversationMessage(role="assistant", text=text))
                        item = AgentMessageItem(id=f"item_{assistant_count}", text=text)
                        if args.include_progress:
                            yield ItemStartedEvent(item=item).to_line()
                        yield ItemCompletedEvent(item=item).to_line()
                        assistant_count += 1

                    elif event_type == "response.completed":
                        response_obj = event.get("response") or {}
                        usage = parse_usage(response_obj.get("usage") if isinstance(response_obj, dict) else None)
                        completed = True
                        await self.history.commit(thread_id, pending)
                        logger.info(f"Committed turn for thread {thread_id} ({len(pending)} messages)")
                        yield TurnCompletedEvent(usage=usage).to_line()
                        break

                    elif event_type == "error":
                        error = event.get("error") or {}
                        message = error.get("message") if isinstance(error, dict) else None
                        yield turn_failed(str(StreamDisconnected(message or "unknown error")))
                        failed = True
                        break

                    else:
                        logger.debug(f"Ignoring Responses event type: {event_type}")

        except httpx.HTTPError as e:
            logger.error(f"Stream from {url} broke: {e}")
            if not completed and not failed:
                yield turn_failed(str(StreamDisconnected(str(e) or type(e).__name__)))
                failed = True
        except json.JSONDecodeError as e:
            logger.error(f"Malformed SSE payload from {url}: {e}")
            if not completed and not failed:
                yield turn_failed(str(StreamDisconnected(f"invalid event payload: {e}")))
                failed = True
        finally:
            await response.aclose()

        if not completed and not failed:
            yield turn_failed(str(StreamDisconnected("missing completion event")))

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
