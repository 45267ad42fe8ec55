"""Idempotency ledger — artifact records backed by SQLite.

Every successful side-effecting tool execution is recorded here, keyed by
workbook fingerprint + action type + normalised arguments.  Before a creating
tool runs, the caller looks the triple up; a hit is re-verified against the
live workbook because a human may have deleted the artifact since.

Usage::

    async with LedgerStore(Path("~/.excel-agent/ledger.db")) as ledger:
        result = await ledger.find_entry(
            LedgerQuery(workbook_fingerprint=fp.computed, action_type="createSheet",
                        normalized_args=normalize_args(args)),
            inspector=workbook,
        )
"""

from __future__ import annotations

import asyncio
import json
import random
import string
import time
from collections.abc import Collection
from pathlib import Path
from typing import Any

import aiosqlite

from excel_agent.exceptions import LedgerStoreError
from excel_agent.ledger.models import (
    ArtifactInspector,
    LedgerActionType,
    LedgerEntry,
    LedgerQuery,
    ReconciliationResult,
)
from excel_agent.ledger.naming import generate_unique_name
from excel_agent.logging import get_logger

log = get_logger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS ledger_entries (
    id                    TEXT PRIMARY KEY,
    workbook_fingerprint  TEXT NOT NULL,
    action_type           TEXT NOT NULL,
    normalized_args       TEXT NOT NULL,
    artifact_id           TEXT NOT NULL,
    artifact_name         TEXT NOT NULL,
    created_at            INTEGER NOT NULL,
    last_verified_at      INTEGER NOT NULL,
    metadata              TEXT
);
CREATE INDEX IF NOT EXISTS idx_ledger_fingerprint ON ledger_entries (workbook_fingerprint);
CREATE INDEX IF NOT EXISTS idx_ledger_fingerprint_action
    ON ledger_entries (workbook_fingerprint, action_type);
"""

_COLUMNS = (
    "id, workbook_fingerprint, action_type, normalized_args, artifact_id, "
    "artifact_name, created_at, last_verified_at, metadata"
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now_ms() -> int:
    return int(time.time() * 1000)


def _entry_id(action_type: LedgerActionType) -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{action_type.value}_{_now_ms()}_{suffix}"


def _row_to_entry(row: tuple[Any, ...]) -> LedgerEntry:
    return LedgerEntry(
        id=row[0],
        workbook_fingerprint=row[1],
        action_type=LedgerActionType(row[2]),
        normalized_args=row[3],
        artifact_id=row[4],
        artifact_name=row[5],
        created_at=row[6],
        last_verified_at=row[7],
        metadata=json.loads(row[8]) if row[8] else None,
    )


def verify_entry(entry: LedgerEntry, inspector: ArtifactInspector) -> bool:
    """Check the live workbook for the artifact *entry* claims to have created.

    Any inspection failure counts as "not found" so the caller re-creates.
    """
    try:
        if entry.action_type is LedgerActionType.CREATE_SHEET:
            return entry.artifact_name in inspector.sheet_names()
        if entry.action_type is LedgerActionType.CREATE_CHART:
            return entry.artifact_name in inspector.chart_names()
        if entry.action_type is LedgerActionType.CREATE_PIVOT_TABLE:
            return entry.artifact_name in inspector.pivot_table_names()
        if entry.action_type is LedgerActionType.CREATE_TABLE:
            return entry.artifact_name in inspector.table_names()
        if entry.action_type is LedgerActionType.ADD_NAMED_RANGE:
            return entry.artifact_name in inspector.named_range_names()
        return True
    except Exception as exc:
        log.warning("ledger_verification_failed", entry_id=entry.id, error=str(exc))
        return False


class LedgerStore:
    """Async idempotency ledger backed by SQLite.

    The store is explicitly owned: construct it, ``open()`` it (or use it as
    an async context manager) and hand it to whoever executes tools.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = await aiosqlite.connect(str(self._db_path))
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.executescript(_SCHEMA_SQL)
            await self._conn.commit()
        except Exception as exc:
            raise LedgerStoreError(f"LedgerStore open failed: {exc}") from exc
        log.debug("ledger_opened", path=str(self._db_path))

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> "LedgerStore":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise LedgerStoreError("LedgerStore is not open")
        return self._conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_entry(
        self,
        workbook_fingerprint: str,
        action_type: LedgerActionType | str,
        normalized_args: str,
        artifact_id: str,
        artifact_name: str,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        conn = self._connection()
        action = LedgerActionType(action_type)
        now = _now_ms()
        entry = LedgerEntry(
            id=_entry_id(action),
            workbook_fingerprint=workbook_fingerprint,
            action_type=action,
            normalized_args=normalized_args,
            artifact_id=artifact_id,
            artifact_name=artifact_name,
            created_at=now,
            last_verified_at=now,
            metadata=metadata,
        )
        async with self._lock:
            await conn.execute(
                f"INSERT INTO ledger_entries ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.workbook_fingerprint,
                    entry.action_type.value,
                    entry.normalized_args,
                    entry.artifact_id,
                    entry.artifact_name,
                    entry.created_at,
                    entry.last_verified_at,
                    json.dumps(metadata, default=str) if metadata else None,
                ),
            )
            await conn.commit()
        log.info(
            "ledger_entry_recorded",
            entry_id=entry.id,
            action_type=action.value,
            artifact_name=artifact_name,
        )
        return entry

    async def update_verification(self, entry_id: str) -> None:
        conn = self._connection()
        async with self._lock:
            await conn.execute(
                "UPDATE ledger_entries SET last_verified_at=? WHERE id=?",
                (_now_ms(), entry_id),
            )
            await conn.commit()

    async def delete_entry(self, entry_id: str) -> bool:
        conn = self._connection()
        async with self._lock:
            cursor = await conn.execute("DELETE FROM ledger_entries WHERE id=?", (entry_id,))
            await conn.commit()
        return bool(cursor.rowcount)

    async def purge_workbook(self, workbook_fingerprint: str) -> int:
        """Delete every entry in the fingerprint's partition. Returns the count."""
        conn = self._connection()
        async with self._lock:
            cursor = await conn.execute(
                "DELETE FROM ledger_entries WHERE workbook_fingerprint=?",
                (workbook_fingerprint,),
            )
            await conn.commit()
            purged = cursor.rowcount or 0
        log.info("ledger_purged", fingerprint=workbook_fingerprint, purged=purged)
        return purged

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_entry(self, entry_id: str) -> LedgerEntry | None:
        conn = self._connection()
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM ledger_entries WHERE id=?", (entry_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_entry(row) if row else None

    async def entries_for_workbook(self, workbook_fingerprint: str) -> list[LedgerEntry]:
        conn = self._connection()
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM ledger_entries WHERE workbook_fingerprint=? "
            "ORDER BY created_at, rowid",
            (workbook_fingerprint,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_entry(r) for r in rows]

    async def find_entry(
        self,
        query: LedgerQuery,
        inspector: ArtifactInspector,
    ) -> ReconciliationResult:
        """Look up the compound key and verify any hit against *inspector*.

        Both ``workbook_fingerprint`` and ``action_type`` are required for a
        hit; ``normalized_args``, when given, must match exactly.
        """
        if not query.workbook_fingerprint or query.action_type is None:
            return ReconciliationResult(exists=False)

        conn = self._connection()
        sql = (
            f"SELECT {_COLUMNS} FROM ledger_entries "
            "WHERE workbook_fingerprint=? AND action_type=?"
        )
        params: list[Any] = [query.workbook_fingerprint, query.action_type.value]
        if query.normalized_args is not None:
            sql += " AND normalized_args=?"
            params.append(query.normalized_args)
        sql += " ORDER BY created_at, rowid LIMIT 1"

        async with conn.execute(sql, tuple(params)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return ReconciliationResult(exists=False)

        entry = _row_to_entry(row)
        verified = verify_entry(entry, inspector)
        if verified:
            await self.update_verification(entry.id)
        else:
            log.info(
                "ledger_entry_stale",
                entry_id=entry.id,
                action_type=entry.action_type.value,
                artifact_name=entry.artifact_name,
            )
        return ReconciliationResult(
            exists=True,
            entry=entry,
            verified=verified,
            needs_recreation=not verified,
        )

    @staticmethod
    def generate_unique_name(base_name: str, existing_names: Collection[str]) -> str:
        return generate_unique_name(base_name, existing_names)
