from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from customllm.core.types import AssistantMessage


class ChatBackend(Protocol):
    async def stream_chat(
        self, payload: dict[str, Any], on_chunk: Callable[[dict[str, Any]], Any] | None = None
    ) -> AssistantMessage:
        ...

    async def complete_chat(self, payload: dict[str, Any]) -> AssistantMessage:
        ...


_BACKENDS: dict[str, Callable[..., ChatBackend]] = {}


def register_backend(name: str, factory: Callable[..., ChatBackend]) -> None:
    key = name.lower()
    if key in _BACKENDS:
        raise ValueError(f"Backend '{name}' is already registered")
    _BACKENDS[key] = factory


def get_backend(name: str, **kwargs: Any) -> ChatBackend:
    key = name.lower()
    factory = _BACKENDS.get(key)
    if factory is None:
        available = ", ".join(list_backends())
        raise ValueError(f"Unknown backend '{name}'. Available backends: {available}")
    return factory(**kwargs)


def list_backends() -> list[str]:
    return sorted(_BACKENDS)
