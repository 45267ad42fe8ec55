"""Collision-free naming and argument canonicalisation."""

from __future__ import annotations

import json
from collections.abc import Collection
from typing import Any


def generate_unique_name(base_name: str, existing_names: Collection[str]) -> str:
    """Return *base_name*, or the first free ``"<base> (n)"`` with n >= 2.

    Must be called before the artifact is created, inside the same workbook
    operation that creates it.
    """
    taken = set(existing_names)
    if base_name not in taken:
        return base_name

    counter = 2
    candidate = f"{base_name} ({counter})"
    while candidate in taken:
        counter += 1
        candidate = f"{base_name} ({counter})"
    return candidate


def normalize_args(args: dict[str, Any] | None) -> str:
    """Canonical serialisation of tool arguments, used as a ledger equality key.

    Key order and whitespace do not affect the result.
    """
    return json.dumps(
        args or {},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
