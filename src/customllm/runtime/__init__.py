"""Chat completion orchestration: message augmentation, tool loop, outbound framing."""

from .channel import ChannelClosed, ChunkChannel
from .chunks import ChunkFactory, format_sse
from .orchestrator import (
    ChatCompletionRequest,
    ChatOrchestrator,
    PreparedRequest,
    RequestError,
    ToolLoopExceeded,
)

__all__ = [
    "ChannelClosed",
    "ChatCompletionRequest",
    "ChatOrchestrator",
    "ChunkChannel",
    "ChunkFactory",
    "PreparedRequest",
    "RequestError",
    "ToolLoopExceeded",
    "format_sse",
]
