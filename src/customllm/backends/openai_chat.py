from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import httpx

from customllm.backends.deltas import MessageAccumulator
from customllm.backends.registry import register_backend
from customllm.backends.sse import DONE_SENTINEL, iter_sse_data
from customllm.core.types import AssistantMessage

logger = logging.getLogger(__name__)

DEFAULT_CHAT_URL = "https://api.openai.com/v1/chat/completions"

ChunkObserver = Callable[[dict[str, Any]], Any]


class StreamState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    FAILED = "failed"
    DONE = "done"


class UpstreamError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        state: StreamState | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.state = state
        self.status_code = status_code


class UpstreamConfigError(UpstreamError):
    pass


@dataclass(slots=True)
class _StreamingCall:
    observer: ChunkObserver | None
    state: StreamState = StreamState.CONNECTING
    frames: int = 0
    accumulator: MessageAccumulator = field(default_factory=MessageAccumulator)

    async def observe(self, chunk: dict[str, Any]) -> None:
        if self.observer is None:
            return
        try:
            result = self.observer(chunk)
            if inspect.isawaitable(result):
                await result
        except Exception:  # noqa: BLE001
            logger.warning("stream observer raised while relaying a chunk", exc_info=True)


@dataclass(slots=True)
class OpenAIChatBackend:
    """Client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    url: str = DEFAULT_CHAT_URL
    api_key: str | None = None
    timeout_s: float = 30.0
    log_payloads: bool = False
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _require_key(self) -> None:
        if not self.api_key:
            raise UpstreamConfigError(
                "CUSTOM_LLM_API_KEY (or AGORA_AGENT_LLM_API_KEY / OPENAI_API_KEY) "
                "is required for proxying requests.",
                state=StreamState.FAILED,
            )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=httpx.Timeout(self.timeout_s))

    def _log_payload(self, payload: dict[str, Any]) -> None:
        if self.log_payloads:
            logger.info("upstream payload:\n%s", json.dumps(payload, indent=2, default=str))

    async def stream_chat(
        self, payload: dict[str, Any], on_chunk: ChunkObserver | None = None
    ) -> AssistantMessage:
        """Stream one completion and return the reassembled assistant message.

        ``on_chunk`` sees every parsed frame before it is folded into the
        message. Any failure raises ``UpstreamError``; partial data is never
        returned.
        """
        self._require_key()
        call = _StreamingCall(observer=on_chunk)
        request_payload = {**payload, "stream": True}
        self._log_payload(request_payload)
        try:
            return await asyncio.wait_for(self._stream(call, request_payload), timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            call.state = StreamState.FAILED
            raise UpstreamError(
                f"Upstream LLM request timed out after {self.timeout_s:g}s.",
                state=call.state,
            ) from exc
        except UpstreamError as exc:
            call.state = StreamState.FAILED
            exc.state = call.state
            raise
        except httpx.HTTPError as exc:
            call.state = StreamState.FAILED
            raise UpstreamError(
                f"Upstream LLM stream failed: {exc}", state=call.state
            ) from exc

    async def _stream(self, call: _StreamingCall, payload: dict[str, Any]) -> AssistantMessage:
        async with self._client() as client:
            async with client.stream(
                "POST", self.url, json=payload, headers=self._headers()
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise UpstreamError(
                        f"Upstream LLM request failed with status {response.status_code}: {body}",
                        status_code=response.status_code,
                    )
                call.state = StreamState.STREAMING
                async for data in iter_sse_data(response.aiter_lines()):
                    call.frames += 1
                    if data == DONE_SENTINEL:
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("unable to parse upstream stream chunk: %.200s", data)
                        continue
                    if not isinstance(chunk, dict):
                        continue
                    await call.observe(chunk)
                    call.accumulator.feed(chunk)
        if call.frames == 0:
            raise UpstreamError("Upstream LLM response did not include a readable stream.")
        call.state = StreamState.FINALIZING
        message = call.accumulator.finalize()
        call.state = StreamState.DONE
        return message

    async def complete_chat(self, payload: dict[str, Any]) -> AssistantMessage:
        self._require_key()
        request_payload = {**payload, "stream": False}
        request_payload.pop("stream_options", None)
        self._log_payload(request_payload)
        try:
            async with self._client() as client:
                response = await asyncio.wait_for(
                    client.post(self.url, json=request_payload, headers=self._headers()),
                    timeout=self.timeout_s,
                )
        except asyncio.TimeoutError as exc:
            raise UpstreamError(
                f"Upstream LLM request timed out after {self.timeout_s:g}s."
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Upstream LLM request failed: {exc}") from exc

        if not response.is_success:
            raise UpstreamError(
                f"Upstream LLM request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("Upstream LLM returned invalid JSON.") from exc
        return _extract_message(data)


def _extract_message(data: Any) -> AssistantMessage:
    choices = data.get("choices") if isinstance(data, dict) else None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice = choices[0]
        message = choice.get("message")
        if isinstance(message, dict):
            return AssistantMessage.from_payload(message, finish_reason=choice.get("finish_reason"))
    raise UpstreamError("Upstream LLM returned an unexpected response.")


def _factory(**kwargs: Any) -> OpenAIChatBackend:
    return OpenAIChatBackend(**kwargs)


register_backend("openai", _factory)
