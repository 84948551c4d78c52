from __future__ import annotations

import pytest

from customllm.checklist.status import CANONICAL_STATUSES, normalize_status


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("complete", "complete"),
        ("  PASS ", "complete"),
        ("done", "complete"),
        ("yes", "complete"),
        ("completed successfully", "complete"),
        ("fail", "fail"),
        ("failed", "fail"),
        ("failure", "fail"),
        ("problem", "fail"),
        ("warning", "warning"),
        ("warn-ish", "warning"),
        ("caution", "warning"),
        ("not yet", "pending"),
        ("todo", "pending"),
        ("pending review", "pending"),
    ],
)
def test_normalize_status_maps_known_values(raw: str, expected: str) -> None:
    assert normalize_status(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "maybe", 42])
def test_normalize_status_rejects_unknown_values(raw: object) -> None:
    assert normalize_status(raw) is None


def test_normalize_status_output_is_always_canonical() -> None:
    samples = ["ok", "okay", "Issue", "Attention", "incomplete", "finished", "WARNING"]
    for sample in samples:
        assert normalize_status(sample) in CANONICAL_STATUSES
