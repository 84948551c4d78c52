from __future__ import annotations

import time
from typing import Any

PING_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {},
    "additionalProperties": True,
}

ECHO_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "payload": {
            "description": "Any JSON-serializable value to echo back.",
            "anyOf": [
                {"type": "object"},
                {"type": "string"},
                {"type": "number"},
                {"type": "boolean"},
                {"type": "null"},
                {"type": "array", "items": {}},
            ],
        }
    },
    "additionalProperties": True,
}


def ping_handler() -> Any:
    async def handler(_args: dict[str, Any]) -> dict[str, Any]:
        return {"status": "ok", "timestamp": int(time.time() * 1000)}

    return handler


def echo_handler() -> Any:
    async def handler(args: dict[str, Any]) -> dict[str, Any]:
        return args

    return handler
