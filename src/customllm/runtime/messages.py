from __future__ import annotations

from typing import Any, Iterable

from customllm.memory.session import DEFAULT_SESSION_ID, SessionMemory

SESSION_MEMORY_MARKER = "[SessionMemory]"

_CONTEXT_SESSION_KEYS = (
    "session_id",
    "sessionId",
    "channel",
    "channel_name",
    "connection_id",
    "call_id",
    "agent_session_id",
)
_BODY_SESSION_KEYS = ("session_id", "sessionId", "channel", "agent_id")
_METADATA_SESSION_KEYS = ("session_id", "sessionId", "channel", "user", "conversation_id")

_PASSTHROUGH_KEYS = ("response_format", "audio")


def resolve_session_id(body: dict[str, Any]) -> str:
    context = body.get("context")
    candidates: list[Any] = []
    if isinstance(context, dict):
        candidates.extend(context.get(key) for key in _CONTEXT_SESSION_KEYS)
    candidates.extend(body.get(key) for key in _BODY_SESSION_KEYS)
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()

    messages = body.get("messages")
    if isinstance(messages, list):
        for message in messages:
            if not isinstance(message, dict):
                continue
            metadata = message.get("metadata")
            metadata = metadata if isinstance(metadata, dict) else {}
            values = [metadata.get(key) for key in _METADATA_SESSION_KEYS]
            values.append(message.get("turn_id"))
            for value in values:
                if value is None or isinstance(value, (dict, list)):
                    continue
                text = str(value).strip()
                if text:
                    return text
    return DEFAULT_SESSION_ID


def normalize_message(message: Any) -> dict[str, Any] | None:
    """Keep only the fields the provider understands."""
    if not isinstance(message, dict):
        return None
    normalized: dict[str, Any] = {"role": message.get("role")}
    if "content" in message:
        normalized["content"] = message["content"]
    for key in ("tool_calls", "audio", "name", "tool_call_id"):
        if message.get(key):
            normalized[key] = message[key]
    return normalized


def normalize_messages(messages: Iterable[Any]) -> list[dict[str, Any]]:
    return [item for item in (normalize_message(message) for message in messages) if item]


def ensure_greeting(
    messages: list[dict[str, Any]], greeting: str | None, memory: SessionMemory | None = None
) -> list[dict[str, Any]]:
    if not messages or not greeting:
        return messages
    if any(message.get("role") == "assistant" for message in messages):
        return messages
    if memory is not None and memory.has_assistant_turn():
        return messages
    result = list(messages)
    last_system = -1
    for index, message in enumerate(result):
        if message.get("role") == "system":
            last_system = index
    result.insert(last_system + 1, {"role": "assistant", "content": greeting})
    return result


def _tool_name(tool: Any) -> str | None:
    if not isinstance(tool, dict):
        return None
    function = tool.get("function")
    name = function.get("name") if isinstance(function, dict) else None
    return name.strip() if isinstance(name, str) and name.strip() else None


def merge_tool_definitions(
    provided: Iterable[Any] | None, registered: Iterable[dict[str, Any]]
) -> list[dict[str, Any]]:
    merged: list[dict[str, Any]] = []
    seen: set[str] = set()
    for tool in provided or []:
        if not isinstance(tool, dict):
            continue
        name = _tool_name(tool)
        if name:
            seen.add(name)
        merged.append(tool)
    for tool in registered:
        name = _tool_name(tool)
        if name and name in seen:
            continue
        merged.append(tool)
    return merged


def _mentions(message: dict[str, Any], needle: str) -> bool:
    content = message.get("content")
    if isinstance(content, str):
        return needle in content
    if isinstance(content, list):
        return any(
            isinstance(part, dict) and isinstance(part.get("text"), str) and needle in part["text"]
            for part in content
        )
    return False


def ensure_checklist_instruction(
    messages: list[dict[str, Any]], instruction: str, tool_name: str
) -> list[dict[str, Any]]:
    if not messages or not instruction:
        return messages
    if any(m.get("role") == "system" and _mentions(m, tool_name) for m in messages):
        return messages
    result = list(messages)
    for index, message in enumerate(result):
        if message.get("role") != "system":
            continue
        content = message.get("content")
        if isinstance(content, str):
            result[index] = {**message, "content": f"{content}\n\n{instruction}"}
            return result
        if isinstance(content, list):
            result[index] = {**message, "content": [*content, {"type": "text", "text": instruction}]}
            return result
        break
    return [{"role": "system", "content": instruction}, *result]


def inject_session_summary(messages: list[dict[str, Any]], summary: str) -> list[dict[str, Any]]:
    if not messages or not summary:
        return messages
    summary_message = {"role": "system", "content": f"{SESSION_MEMORY_MARKER}\n{summary}"}
    result = list(messages)
    for index, message in enumerate(result):
        if (
            message.get("role") == "system"
            and isinstance(message.get("content"), str)
            and SESSION_MEMORY_MARKER in message["content"]
        ):
            result[index] = summary_message
            return result
    for index, message in enumerate(result):
        if message.get("role") == "system":
            result.insert(index + 1, summary_message)
            return result
    return [summary_message, *result]


def build_chat_payload(
    body: dict[str, Any],
    *,
    model: str,
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]],
) -> dict[str, Any]:
    """Assemble the upstream request from the augmented conversation.

    Only fields the provider accepts are forwarded. ``tool_choice`` falls back
    to ``auto`` when tools are present; ``stream`` is set by the backend.
    """
    payload: dict[str, Any] = {"model": body.get("model") or model, "messages": messages}
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = body.get("tool_choice") or "auto"
    elif body.get("tool_choice"):
        payload["tool_choice"] = body["tool_choice"]
    for key in _PASSTHROUGH_KEYS:
        if body.get(key):
            payload[key] = body[key]
    modalities = body.get("modalities")
    if isinstance(modalities, list) and modalities:
        payload["modalities"] = modalities
    if isinstance(body.get("parallel_tool_calls"), bool):
        payload["parallel_tool_calls"] = body["parallel_tool_calls"]
    stream_options = body.get("stream_options")
    if isinstance(stream_options, dict) and stream_options:
        payload["stream_options"] = stream_options
    context = body.get("context")
    if isinstance(context, dict) and context:
        payload["context"] = context
    return payload
