"""Unit tests — LedgerStore persistence, lookup and verification."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest
import pytest_asyncio

from excel_agent.exceptions import LedgerStoreError
from excel_agent.ledger.models import LedgerActionType, LedgerEntry, LedgerQuery
from excel_agent.ledger.naming import normalize_args
from excel_agent.ledger.store import LedgerStore, verify_entry

FP = "report.xlsx:abc123"


@dataclass
class FakeInspector:
    sheets: list[str] = field(default_factory=list)
    charts: list[str] = field(default_factory=list)
    pivots: list[str] = field(default_factory=list)
    tables: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)

    def sheet_names(self) -> list[str]:
        return self.sheets

    def chart_names(self) -> list[str]:
        return self.charts

    def pivot_table_names(self) -> list[str]:
        return self.pivots

    def table_names(self) -> list[str]:
        return self.tables

    def named_range_names(self) -> list[str]:
        return self.names


class BrokenInspector(FakeInspector):
    def sheet_names(self) -> list[str]:
        raise RuntimeError("workbook closed")


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> LedgerStore:
    s = LedgerStore(tmp_path / "ledger.db")
    await s.open()
    yield s
    await s.close()


async def _record_sheet(store: LedgerStore, name: str, args: dict | None = None) -> LedgerEntry:
    return await store.record_entry(
        workbook_fingerprint=FP,
        action_type=LedgerActionType.CREATE_SHEET,
        normalized_args=normalize_args(args or {"name": name}),
        artifact_id=name,
        artifact_name=name,
    )


def _query(args: dict | None = None) -> LedgerQuery:
    return LedgerQuery(
        workbook_fingerprint=FP,
        action_type=LedgerActionType.CREATE_SHEET,
        normalized_args=normalize_args(args) if args is not None else None,
    )


@pytest.mark.unit
class TestLifecycle:
    async def test_context_manager_opens_and_closes(self, tmp_path: Path) -> None:
        async with LedgerStore(tmp_path / "nested" / "ledger.db") as s:
            assert s.is_open
        assert not s.is_open

    async def test_use_before_open_raises(self, tmp_path: Path) -> None:
        s = LedgerStore(tmp_path / "ledger.db")
        with pytest.raises(LedgerStoreError):
            await s.get_entry("x")

    async def test_entries_survive_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "ledger.db"
        async with LedgerStore(path) as s:
            entry = await _record_sheet(s, "Summary")
        async with LedgerStore(path) as s:
            loaded = await s.get_entry(entry.id)
        assert loaded is not None
        assert loaded.artifact_name == "Summary"


@pytest.mark.unit
class TestRecord:
    async def test_record_and_get(self, store: LedgerStore) -> None:
        entry = await store.record_entry(
            workbook_fingerprint=FP,
            action_type="createChart",
            normalized_args=normalize_args({"title": "Revenue"}),
            artifact_id="Revenue",
            artifact_name="Revenue",
            metadata={"toolName": "createChart"},
        )
        assert entry.id.startswith("createChart_")
        assert entry.created_at == entry.last_verified_at

        loaded = await store.get_entry(entry.id)
        assert loaded is not None
        assert loaded.action_type is LedgerActionType.CREATE_CHART
        assert loaded.metadata == {"toolName": "createChart"}

    async def test_get_missing_returns_none(self, store: LedgerStore) -> None:
        assert await store.get_entry("nope") is None

    async def test_entries_for_workbook_in_creation_order(self, store: LedgerStore) -> None:
        await _record_sheet(store, "A")
        await _record_sheet(store, "B")
        entries = await store.entries_for_workbook(FP)
        assert [e.artifact_name for e in entries] == ["A", "B"]
        assert await store.entries_for_workbook("other:000") == []

    async def test_delete_entry(self, store: LedgerStore) -> None:
        entry = await _record_sheet(store, "A")
        assert await store.delete_entry(entry.id) is True
        assert await store.delete_entry(entry.id) is False
        assert await store.get_entry(entry.id) is None

    async def test_purge_workbook(self, store: LedgerStore) -> None:
        await _record_sheet(store, "A")
        await _record_sheet(store, "B")
        assert await store.purge_workbook(FP) == 2
        assert await store.entries_for_workbook(FP) == []


@pytest.mark.unit
class TestFindEntry:
    async def test_fingerprint_and_action_required(self, store: LedgerStore) -> None:
        await _record_sheet(store, "A")
        result = await store.find_entry(
            LedgerQuery(action_type=LedgerActionType.CREATE_SHEET), FakeInspector(sheets=["A"])
        )
        assert result.exists is False

        result = await store.find_entry(
            LedgerQuery(workbook_fingerprint=FP), FakeInspector(sheets=["A"])
        )
        assert result.exists is False

    async def test_verified_hit(self, store: LedgerStore) -> None:
        entry = await _record_sheet(store, "Summary")
        result = await store.find_entry(
            _query({"name": "Summary"}), FakeInspector(sheets=["Summary"])
        )
        assert result.exists is True
        assert result.verified is True
        assert result.needs_recreation is False
        assert result.entry is not None
        assert result.entry.id == entry.id

    async def test_stale_hit_needs_recreation(self, store: LedgerStore) -> None:
        await _record_sheet(store, "Summary")
        result = await store.find_entry(_query({"name": "Summary"}), FakeInspector(sheets=[]))
        assert result.exists is True
        assert result.verified is False
        assert result.needs_recreation is True

    async def test_args_must_match_exactly(self, store: LedgerStore) -> None:
        await _record_sheet(store, "Summary")
        result = await store.find_entry(
            _query({"name": "Summary", "position": "end"}), FakeInspector(sheets=["Summary"])
        )
        assert result.exists is False

    async def test_key_order_does_not_matter(self, store: LedgerStore) -> None:
        await _record_sheet(store, "Summary", {"name": "Summary", "position": "end"})
        result = await store.find_entry(
            _query({"position": "end", "name": "Summary"}), FakeInspector(sheets=["Summary"])
        )
        assert result.verified is True

    async def test_earliest_entry_wins(self, store: LedgerStore) -> None:
        first = await _record_sheet(store, "A", {"k": 1})
        await _record_sheet(store, "B", {"k": 2})
        result = await store.find_entry(_query(), FakeInspector(sheets=["A", "B"]))
        assert result.entry is not None
        assert result.entry.id == first.id

    async def test_inspector_failure_counts_as_missing(self, store: LedgerStore) -> None:
        await _record_sheet(store, "Summary")
        result = await store.find_entry(_query({"name": "Summary"}), BrokenInspector())
        assert result.exists is True
        assert result.needs_recreation is True


@pytest.mark.unit
class TestVerifyEntry:
    def _entry(self, action: LedgerActionType, name: str) -> LedgerEntry:
        return LedgerEntry(
            id="e1",
            workbook_fingerprint=FP,
            action_type=action,
            normalized_args="{}",
            artifact_id=name,
            artifact_name=name,
            created_at=0,
            last_verified_at=0,
        )

    @pytest.mark.parametrize(
        "action, inspector",
        [
            (LedgerActionType.CREATE_SHEET, FakeInspector(sheets=["X"])),
            (LedgerActionType.CREATE_CHART, FakeInspector(charts=["X"])),
            (LedgerActionType.CREATE_PIVOT_TABLE, FakeInspector(pivots=["X"])),
            (LedgerActionType.CREATE_TABLE, FakeInspector(tables=["X"])),
            (LedgerActionType.ADD_NAMED_RANGE, FakeInspector(names=["X"])),
        ],
    )
    def test_each_action_checks_its_collection(
        self, action: LedgerActionType, inspector: FakeInspector
    ) -> None:
        assert verify_entry(self._entry(action, "X"), inspector) is True
        assert verify_entry(self._entry(action, "X"), FakeInspector()) is False

    def test_generate_unique_name_delegates(self) -> None:
        assert LedgerStore.generate_unique_name("Sheet", ["Sheet"]) == "Sheet (2)"
