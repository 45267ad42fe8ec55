"""Ledger data models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable

from excel_agent.protocol.workbook import WireModel


class LedgerActionType(str, Enum):
    """Side-effecting actions whose artifacts are tracked for idempotency."""

    CREATE_SHEET = "createSheet"
    CREATE_TABLE = "createTable"
    CREATE_CHART = "createChart"
    CREATE_PIVOT_TABLE = "createPivotTable"
    ADD_NAMED_RANGE = "addNamedRange"

    @classmethod
    def for_tool(cls, tool_name: str) -> "LedgerActionType | None":
        """Return the tracked action for a creating tool, or None."""
        return _TOOL_ACTIONS.get(tool_name)


_TOOL_ACTIONS: dict[str, LedgerActionType] = {
    "createSheet": LedgerActionType.CREATE_SHEET,
    "ensureTable": LedgerActionType.CREATE_TABLE,
    "createChart": LedgerActionType.CREATE_CHART,
    "createPivotTable": LedgerActionType.CREATE_PIVOT_TABLE,
    "addNamedRange": LedgerActionType.ADD_NAMED_RANGE,
}


class LedgerEntry(WireModel):
    id: str
    workbook_fingerprint: str
    action_type: LedgerActionType
    normalized_args: str
    artifact_id: str
    artifact_name: str
    created_at: int
    last_verified_at: int
    metadata: dict[str, Any] | None = None


class LedgerQuery(WireModel):
    workbook_fingerprint: str | None = None
    action_type: LedgerActionType | None = None
    normalized_args: str | None = None


class WorkbookFingerprint(WireModel):
    workbook_name: str
    sheet_names_hash: str
    computed: str


class ReconciliationResult(WireModel):
    exists: bool
    entry: LedgerEntry | None = None
    verified: bool = False
    needs_recreation: bool = False


@runtime_checkable
class ArtifactInspector(Protocol):
    """Read-only view of live workbook state used to verify ledger entries."""

    def sheet_names(self) -> list[str]: ...

    def chart_names(self) -> list[str]: ...

    def pivot_table_names(self) -> list[str]: ...

    def table_names(self) -> list[str]: ...

    def named_range_names(self) -> list[str]: ...
