from __future__ import annotations

from typing import Any

from customllm.checklist.store import ChecklistStore

UPDATE_ITEM_TOOL = "update_checklist_item_status"
RESET_TOOL = "reset_checklist"

UPDATE_ITEM_DESCRIPTION = (
    "Update the status and notes for a checklist entry. Use when the user confirms "
    "progress or completion for a specific item."
)

UPDATE_ITEM_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "item_id": {
            "type": "string",
            "description": 'Optional unique identifier of the checklist item (e.g., "item-1").',
        },
        "item_number": {
            "type": "integer",
            "minimum": 1,
            "description": "Optional 1-based index of the checklist item (e.g., 1 for the first item).",
        },
        "item_name": {
            "type": "string",
            "description": (
                "Optional free-form name or fragment of the checklist question to help "
                "locate the item."
            ),
        },
        "status": {
            "type": "string",
            "enum": ["pending", "complete", "pass", "fail", "warning"],
            "description": (
                'New status for the item. "complete" indicates the task is done. '
                '"pending" reopens it.'
            ),
        },
        "recommendation": {
            "type": "string",
            "description": (
                "Optional follow-up recommendation or summary to attach to the item for "
                "the human reviewer."
            ),
        },
        "note": {
            "type": "string",
            "description": "Optional short note explaining the status update.",
        },
    },
    "required": ["status"],
    "additionalProperties": False,
}

RESET_DESCRIPTION = (
    "Reset all checklist items back to a pending state. Use at the start of a new "
    "review session."
)


def update_item_handler(store: ChecklistStore) -> Any:
    def handler(args: dict[str, Any]) -> dict[str, Any]:
        update = store.update_item(
            item_id=args.get("item_id"),
            item_number=args.get("item_number"),
            item_name=args.get("item_name"),
            status=args.get("status"),
            recommendation=args.get("recommendation"),
            note=args.get("note"),
        )
        return update.to_result()

    return handler


def reset_handler(store: ChecklistStore) -> Any:
    def handler(_args: dict[str, Any]) -> dict[str, Any]:
        snapshot = store.reset()
        return {"success": True, "items": snapshot.to_dict()["items"]}

    return handler
