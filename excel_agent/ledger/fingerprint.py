"""Workbook fingerprinting.

A fingerprint partitions the ledger: entries recorded against one workbook
(or against the same workbook before its sheet set changed) never match
lookups made against another.  It is derived on demand and never cached.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

from excel_agent.ledger.models import WorkbookFingerprint
from excel_agent.protocol.workbook import WorkbookSchema


def hash_sheet_names(sheet_names: Iterable[str]) -> str:
    joined = "|".join(sorted(sheet_names))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


def compute_fingerprint(workbook_name: str, sheet_names: Iterable[str]) -> WorkbookFingerprint:
    sheet_names_hash = hash_sheet_names(sheet_names)
    return WorkbookFingerprint(
        workbook_name=workbook_name,
        sheet_names_hash=sheet_names_hash,
        computed=f"{workbook_name}:{sheet_names_hash}",
    )


def fingerprint_schema(schema: WorkbookSchema) -> WorkbookFingerprint:
    return compute_fingerprint(schema.name, schema.sheet_names())
