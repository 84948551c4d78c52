from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from customllm.backends.deltas import (
    AudioDelta,
    ContentDelta,
    RoleDelta,
    flatten_content,
    parse_chunk,
)
from customllm.backends.openai_chat import UpstreamError
from customllm.backends.registry import ChatBackend
from customllm.core.tracing import TraceEvent, TraceWriter
from customllm.core.types import AssistantMessage, ToolCall
from customllm.memory.session import SessionMemoryStore
from customllm.runtime.channel import ChunkChannel
from customllm.runtime.chunks import ChunkFactory
from customllm.runtime.messages import (
    build_chat_payload,
    ensure_checklist_instruction,
    ensure_greeting,
    inject_session_summary,
    merge_tool_definitions,
    normalize_messages,
    resolve_session_id,
)
from customllm.tools.checklist_tools import UPDATE_ITEM_TOOL
from customllm.tools.executor import ToolExecutor
from customllm.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 10


class RequestError(ValueError):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class ToolLoopExceeded(RuntimeError):
    pass


class ChatCompletionRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    messages: List[Any]
    model: Optional[str] = None
    stream: Optional[bool] = None
    tools: Optional[List[Any]] = None
    tool_choice: Any = None


@dataclass(slots=True)
class PreparedRequest:
    session_id: str
    model: str
    body: dict[str, Any]
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]]
    run_id: str = field(default_factory=lambda: f"req-{uuid.uuid4().hex[:12]}")


@dataclass(slots=True)
class _TurnRelay:
    """Forwards upstream deltas of one request to the caller."""

    channel: ChunkChannel
    chunks: ChunkFactory
    role_sent: bool = False
    forwarded: list[str] = field(default_factory=list)
    streamed_audio: bool = False

    async def ensure_role(self, role: str | None = None) -> None:
        if self.role_sent:
            return
        self.role_sent = True
        await self.channel.send(self.chunks.role(role or "assistant"))

    def reset_turn(self) -> None:
        self.forwarded = []
        self.streamed_audio = False

    async def relay(self, chunk: dict[str, Any]) -> None:
        deltas = parse_chunk(chunk)
        if not deltas:
            return
        role = next((delta.role for delta in deltas if isinstance(delta, RoleDelta)), None)
        await self.ensure_role(role)
        for delta in deltas:
            if isinstance(delta, ContentDelta):
                self.forwarded.append(delta.text)
                await self.channel.send(self.chunks.content(delta.text))
            elif isinstance(delta, AudioDelta):
                self.streamed_audio = True
                await self.channel.send(self.chunks.audio(delta.audio))

    def unsent_content(self, text: str) -> str:
        sent = "".join(self.forwarded)
        if sent and text.startswith(sent):
            return text[len(sent) :]
        return text


def _trace(tracer: TraceWriter | None, kind: str, **data: Any) -> None:
    if tracer is None:
        return
    tracer.write(TraceEvent(ts=time.time(), kind=kind, data=data))


class ChatOrchestrator:
    """Runs one chat completion: augment, call upstream, dispatch tools, stream back."""

    def __init__(
        self,
        backend: ChatBackend,
        registry: ToolRegistry,
        executor: ToolExecutor,
        sessions: SessionMemoryStore,
        *,
        model: str,
        greeting: str | None = None,
        checklist_instruction: str | None = None,
        max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
        trace_dir: Path | None = None,
    ) -> None:
        if max_tool_iterations < 1:
            raise ValueError("max_tool_iterations must be at least 1")
        self.backend = backend
        self.registry = registry
        self.executor = executor
        self.sessions = sessions
        self.model = model
        self.greeting = greeting
        self.checklist_instruction = checklist_instruction
        self.max_tool_iterations = max_tool_iterations
        self.trace_dir = trace_dir

    def prepare(self, payload: Any) -> PreparedRequest:
        """Validate the request body and build the augmented conversation.

        Raises ``RequestError`` for anything the caller must fix; nothing has
        been sent upstream at that point.
        """
        if not isinstance(payload, dict):
            raise RequestError(400, "Request body must be an object.")
        try:
            request = ChatCompletionRequest.model_validate(payload)
        except ValidationError as exc:
            if any(error.get("loc", ())[:1] == ("messages",) for error in exc.errors()):
                raise RequestError(400, "At least one message is required.") from exc
            raise RequestError(400, f"Invalid chat completion request: {exc}") from exc
        if request.stream is False:
            raise RequestError(400, "Custom LLM endpoint requires stream=true.")
        inbound = [message for message in request.messages if isinstance(message, dict)]
        if not inbound:
            raise RequestError(400, "At least one message is required.")

        session_id = resolve_session_id(payload)
        memory = self.sessions.get(session_id)
        # memory sees ids, turn ids and timestamps; the provider only gets normalized messages
        inbound = ensure_greeting(inbound, self.greeting, memory)
        self.sessions.append_messages(session_id, inbound)
        messages = normalize_messages(inbound)
        self.sessions.sync_from_checklist(session_id)

        tools = merge_tool_definitions(request.tools, self.registry.list_definitions())
        if self.checklist_instruction and self.registry.has(UPDATE_ITEM_TOOL):
            messages = ensure_checklist_instruction(
                messages, self.checklist_instruction, UPDATE_ITEM_TOOL
            )
        messages = inject_session_summary(messages, self.sessions.build_summary(session_id))
        return PreparedRequest(
            session_id=session_id,
            model=request.model or self.model,
            body=payload,
            messages=messages,
            tools=tools,
        )

    def _tracer(self, prepared: PreparedRequest) -> TraceWriter | None:
        if self.trace_dir is None:
            return None
        return TraceWriter(prepared.session_id, base_dir=self.trace_dir, run_id=prepared.run_id)

    async def run(self, prepared: PreparedRequest, channel: ChunkChannel) -> None:
        """Produce the response for ``prepared`` into ``channel``.

        The channel is always closed: normally with ``[DONE]``, after an inline
        error chunk when the turn fails, or aborted when the task is cancelled.
        """
        tracer = self._tracer(prepared)
        chunks = ChunkFactory(prepared.model)
        _trace(
            tracer,
            "request",
            model=prepared.model,
            messages=len(prepared.messages),
            tools=[tool.get("function", {}).get("name") for tool in prepared.tools],
        )
        logger.info("chat completion session=%s run=%s", prepared.session_id, prepared.run_id)
        try:
            await self._run_loop(prepared, channel, chunks, tracer)
        except asyncio.CancelledError:
            logger.info("client went away, cancelling run %s", prepared.run_id)
            channel.abort()
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("chat completion failed for session %s", prepared.session_id)
            _trace(tracer, "error", error=str(exc), type=type(exc).__name__)
            await channel.send(chunks.error())
        await channel.close()

    async def _call_upstream(
        self,
        payload: dict[str, Any],
        relay: _TurnRelay,
        tracer: TraceWriter | None,
        iteration: int,
    ) -> tuple[AssistantMessage, bool]:
        _trace(tracer, "llm_req", iteration=iteration, messages=len(payload["messages"]))
        try:
            reply = await self.backend.stream_chat(payload, relay.relay)
            return reply, True
        except UpstreamError as exc:
            logger.warning(
                "streaming upstream completion failed, falling back to non-streaming request: %s",
                exc,
            )
            _trace(tracer, "llm_stream_failed", iteration=iteration, error=str(exc))
        reply = await self.backend.complete_chat(payload)
        return reply, False

    async def _run_loop(
        self,
        prepared: PreparedRequest,
        channel: ChunkChannel,
        chunks: ChunkFactory,
        tracer: TraceWriter | None,
    ) -> None:
        session_id = prepared.session_id
        messages = list(prepared.messages)
        relay = _TurnRelay(channel=channel, chunks=chunks)

        for iteration in range(1, self.max_tool_iterations + 1):
            relay.reset_turn()
            payload = build_chat_payload(
                prepared.body, model=prepared.model, messages=messages, tools=prepared.tools
            )
            reply, streamed = await self._call_upstream(payload, relay, tracer, iteration)
            _trace(
                tracer,
                "llm_done",
                iteration=iteration,
                streamed=streamed,
                tool_calls=len(reply.tool_calls),
                content_chars=len(flatten_content(reply.content)),
            )
            await relay.ensure_role(reply.role)

            if reply.tool_calls:
                messages = await self._dispatch_tools(
                    session_id, reply, messages, channel, chunks, tracer
                )
                continue

            text = flatten_content(reply.content)
            if not streamed:
                remainder = relay.unsent_content(text)
                if remainder:
                    await channel.send(chunks.content(remainder))
            if reply.audio and not relay.streamed_audio:
                await channel.send(chunks.audio(reply.audio))
            final_message: dict[str, Any] = {"role": "assistant", "content": text}
            if reply.audio:
                final_message["audio"] = reply.audio
            self.sessions.append_messages(session_id, [final_message])
            self.sessions.sync_from_checklist(session_id)
            await channel.send(chunks.stop())
            return

        raise ToolLoopExceeded(
            f"Exceeded maximum number of tool call iterations ({self.max_tool_iterations})."
        )

    async def _dispatch_tools(
        self,
        session_id: str,
        reply: AssistantMessage,
        messages: list[dict[str, Any]],
        channel: ChunkChannel,
        chunks: ChunkFactory,
        tracer: TraceWriter | None,
    ) -> list[dict[str, Any]]:
        calls: list[ToolCall] = []
        for call in reply.tool_calls:
            if not call.id:
                call.id = f"call_{uuid.uuid4().hex[:24]}"
            calls.append(call)
        call_payloads = [call.to_dict() for call in calls]
        await channel.send(chunks.tool_calls(call_payloads))

        assistant_message = {
            "role": "assistant",
            "content": reply.content or None,
            "tool_calls": call_payloads,
        }
        messages = [*messages, assistant_message]
        self.sessions.append_messages(session_id, [assistant_message])

        for call, result in zip(calls, await self.executor.execute_calls(calls, tracer)):
            self.sessions.apply_tool_result(session_id, call, result.payload)
            tool_message = result.to_tool_message()
            messages.append(tool_message)
            self.sessions.append_messages(session_id, [tool_message])

        self.sessions.sync_from_checklist(session_id)
        return inject_session_summary(messages, self.sessions.build_summary(session_id))
