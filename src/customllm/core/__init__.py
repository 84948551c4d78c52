"""Core data contracts and utilities."""

from .tracing import TraceEvent, TraceWriter
from .types import AssistantMessage, ToolCall, content_text

__all__ = ["AssistantMessage", "ToolCall", "TraceEvent", "TraceWriter", "content_text"]
