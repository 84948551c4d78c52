"""Streaming chat-completion gateway with tool dispatch and a shared checklist."""

__version__ = "0.1.0"
