from __future__ import annotations

from typing import AsyncIterable, AsyncIterator

DONE_SENTINEL = "[DONE]"


async def iter_sse_data(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield every ``data:`` payload from a stream of SSE lines.

    Comment lines (``: keep-alive``), blank separators and other fields such as
    ``event:`` or ``id:`` are skipped.
    """
    async for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(":"):
            continue
        if stripped.startswith("data:"):
            payload = stripped[len("data:") :].strip()
            if payload:
                yield payload
