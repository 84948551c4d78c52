"""Upstream chat-completion backends."""

from .deltas import (
    AudioDelta,
    ContentDelta,
    Delta,
    FinishDelta,
    MessageAccumulator,
    RoleDelta,
    ToolCallDelta,
    parse_chunk,
)
from .fake import FakeChatBackend, FakeReply
from .openai_chat import (
    OpenAIChatBackend,
    StreamState,
    UpstreamConfigError,
    UpstreamError,
)
from .registry import ChatBackend, get_backend, list_backends, register_backend

__all__ = [
    "AudioDelta",
    "ChatBackend",
    "ContentDelta",
    "Delta",
    "FakeChatBackend",
    "FakeReply",
    "FinishDelta",
    "MessageAccumulator",
    "OpenAIChatBackend",
    "RoleDelta",
    "StreamState",
    "ToolCallDelta",
    "UpstreamConfigError",
    "UpstreamError",
    "get_backend",
    "list_backends",
    "parse_chunk",
    "register_backend",
]
