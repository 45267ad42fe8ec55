"""Idempotency ledger for artifact-creating tools."""

from excel_agent.ledger.fingerprint import compute_fingerprint, fingerprint_schema
from excel_agent.ledger.models import (
    ArtifactInspector,
    LedgerActionType,
    LedgerEntry,
    LedgerQuery,
    ReconciliationResult,
    WorkbookFingerprint,
)
from excel_agent.ledger.naming import generate_unique_name, normalize_args
from excel_agent.ledger.store import LedgerStore, verify_entry

__all__ = [
    "ArtifactInspector",
    "LedgerActionType",
    "LedgerEntry",
    "LedgerQuery",
    "LedgerStore",
    "ReconciliationResult",
    "WorkbookFingerprint",
    "compute_fingerprint",
    "fingerprint_schema",
    "generate_unique_name",
    "normalize_args",
    "verify_entry",
]
