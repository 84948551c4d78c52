from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
import uvicorn

from customllm.backends import ChatBackend, get_backend, list_backends
from customllm.checklist.store import ChecklistStore
from customllm.config import GatewayConfig, load_config
from customllm.memory.session import SessionMemoryStore
from customllm.prompts import checklist_instruction
from customllm.runtime.channel import ChunkChannel
from customllm.runtime.chunks import format_sse
from customllm.runtime.orchestrator import ChatOrchestrator, PreparedRequest, RequestError
from customllm.tools import build_default_registry
from customllm.tools.executor import ToolExecutor
from customllm.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate"}
SSE_HEADERS = {"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"}
KEEPALIVE_FRAME = ": keep-alive\n\n"


def build_backend(config: GatewayConfig) -> ChatBackend:
    if config.backend == "openai":
        return get_backend(
            "openai",
            url=config.base_url,
            api_key=config.api_key,
            timeout_s=config.request_timeout_s,
            log_payloads=config.log_payloads,
        )
    return get_backend(config.backend)


async def read_limited_body(request: Request, limit: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        raise HTTPException(status_code=413, detail="Request payload too large.")
    body = bytearray()
    async for piece in request.stream():
        body.extend(piece)
        if len(body) > limit:
            raise HTTPException(status_code=413, detail="Request payload too large.")
    return bytes(body)


async def checklist_event_stream(
    store: ChecklistStore, keepalive_s: float = 30.0
) -> AsyncIterator[str]:
    """SSE frames for one checklist subscriber.

    The current snapshot goes out first, then one frame per mutation, with a
    keep-alive comment whenever ``keepalive_s`` passes without an update.
    The stream ends when the store closes the subscription.
    """
    with store.subscription() as sink:
        yield format_sse(store.snapshot().serialize())
        while True:
            try:
                data = await asyncio.wait_for(sink.get(), timeout=keepalive_s)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            if data is None:
                return
            yield format_sse(data)


async def stream_completion(
    orchestrator: ChatOrchestrator, prepared: PreparedRequest, channel: ChunkChannel
) -> AsyncIterator[str]:
    task = asyncio.create_task(orchestrator.run(prepared, channel))
    try:
        async for frame in channel:
            yield frame
    finally:
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)


def create_app(
    config: GatewayConfig | None = None,
    *,
    backend: ChatBackend | None = None,
    store: ChecklistStore | None = None,
    sessions: SessionMemoryStore | None = None,
    registry: ToolRegistry | None = None,
) -> FastAPI:
    config = config or load_config()
    store = store or ChecklistStore()
    sessions = sessions or SessionMemoryStore(store)
    if registry is None:
        registry, executor = build_default_registry(store, config.tools_module)
    else:
        executor = ToolExecutor(registry)
    backend = backend or build_backend(config)
    instruction = config.checklist_prompt or checklist_instruction(
        entry.question for entry in store.template
    )
    orchestrator = ChatOrchestrator(
        backend,
        registry,
        executor,
        sessions,
        model=config.model,
        greeting=config.greeting,
        checklist_instruction=instruction,
        max_tool_iterations=config.max_tool_iterations,
        trace_dir=config.trace_dir,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        store.close()

    app = FastAPI(lifespan=lifespan)
    app.state.config = config
    app.state.store = store
    app.state.sessions = sessions
    app.state.registry = registry
    app.state.orchestrator = orchestrator
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "tools": executor.list_tools()}

    @app.get("/checklist")
    async def get_checklist() -> JSONResponse:
        return JSONResponse(store.snapshot().to_dict(), headers=NO_STORE_HEADERS)

    @app.get("/checklist/stream")
    async def checklist_stream() -> StreamingResponse:
        return StreamingResponse(
            checklist_event_stream(store, config.keepalive_s),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.post("/checklist/reset")
    async def reset_checklist() -> JSONResponse:
        snapshot = store.reset()
        sessions.clear_all()
        logger.info("checklist reset over HTTP; session memory cleared")
        return JSONResponse(
            {"success": True, "items": [item.to_dict() for item in snapshot.items]},
            headers=NO_STORE_HEADERS,
        )

    @app.post("/chat/completions")
    async def chat_completions(request: Request) -> StreamingResponse:
        raw = await read_limited_body(request, config.max_body_bytes)
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Request body must be valid JSON.") from exc
        try:
            prepared = orchestrator.prepare(payload)
        except RequestError as exc:
            raise HTTPException(status_code=exc.status, detail=exc.message) from exc
        return StreamingResponse(
            stream_completion(orchestrator, prepared, ChunkChannel()),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/sessions")
    async def list_sessions() -> dict[str, Any]:
        memories = sorted(sessions.list_sessions(), key=lambda m: m.last_updated_at, reverse=True)
        return {"sessions": [memory.describe() for memory in memories]}

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str) -> dict[str, Any]:
        memory = sessions.peek(session_id)
        if memory is None:
            raise HTTPException(status_code=404, detail="session not found")
        next_item = sessions.next_pending_item(session_id)
        return {
            **memory.describe(),
            "summary": sessions.build_summary(session_id),
            "next_pending_item": next_item.to_dict() if next_item is not None else None,
            "ledger": [
                {"role": entry.role, "content": entry.content, "turn_id": entry.turn_id}
                for entry in memory.ledger
            ],
        }

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str) -> dict[str, Any]:
        if not sessions.clear(session_id):
            raise HTTPException(status_code=404, detail="session not found")
        return {"success": True, "session_id": session_id}

    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="customllm")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--log-level")
    parser.add_argument("--backend", choices=list_backends())
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config()
    log_level = (args.log_level or config.log_level).upper()
    logging.basicConfig(
        level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    backend_name = args.backend or config.backend
    if backend_name == "openai" and not config.api_key:
        logger.error(
            "CUSTOM_LLM_API_KEY (or AGORA_AGENT_LLM_API_KEY / OPENAI_API_KEY) is required "
            "for proxying requests."
        )
        return 1
    if args.backend:
        os.environ["CUSTOM_LLM_BACKEND"] = args.backend
    uvicorn.run(
        "customllm.app:create_app",
        host=args.host or config.host,
        port=args.port or config.port,
        log_level=log_level.lower(),
        factory=True,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
