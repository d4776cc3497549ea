from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

import aiosqlite

from .base import BaseService


@dataclass(frozen=True)
class AuditRecord:
    id: int
    event_type: str
    record_id: Optional[int]
    case_id: Optional[int]
    kind: Optional[str]
    target_id: Optional[int]
    operator_id: Optional[int]
    created_at_iso: str
    details_json: str

    @property
    def details(self) -> dict[str, Any]:
        return json.loads(self.details_json)


class ModerationAuditStore(BaseService[AuditRecord]):
    """Append-only trail of lifecycle events, one row per emitted audit entry."""

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS moderation_audit (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              event_type TEXT NOT NULL,
              record_id INTEGER,
              case_id INTEGER,
              kind TEXT,
              target_id INTEGER,
              operator_id INTEGER,
              created_at_iso TEXT NOT NULL,
              details_json TEXT NOT NULL
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_modaudit_case ON moderation_audit(case_id, id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_modaudit_target ON moderation_audit(target_id, id)")

    def _from_row(self, row: aiosqlite.Row) -> AuditRecord:
        return AuditRecord(
            id=int(row["id"]),
            event_type=str(row["event_type"]),
            record_id=(int(row["record_id"]) if row["record_id"] is not None else None),
            case_id=(int(row["case_id"]) if row["case_id"] is not None else None),
            kind=(str(row["kind"]) if row["kind"] is not None else None),
            target_id=(int(row["target_id"]) if row["target_id"] is not None else None),
            operator_id=(int(row["operator_id"]) if row["operator_id"] is not None else None),
            created_at_iso=str(row["created_at_iso"]),
            details_json=str(row["details_json"]),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT id, event_type, record_id, case_id, kind, target_id, operator_id, created_at_iso, details_json FROM moderation_audit WHERE id = ?"

    async def add(
        self,
        *,
        event_type: str,
        created_at_iso: str,
        details: dict[str, Any],
        record_id: Optional[int] = None,
        case_id: Optional[int] = None,
        kind: Optional[str] = None,
        target_id: Optional[int] = None,
        operator_id: Optional[int] = None,
    ) -> int:
        details_json = json.dumps(details, separators=(",", ":"), ensure_ascii=False)
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                INSERT INTO moderation_audit (
                  event_type, record_id, case_id, kind, target_id, operator_id, created_at_iso, details_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (event_type, record_id, case_id, kind, target_id, operator_id, created_at_iso, details_json),
            )
            await db.commit()
            return int(cur.lastrowid)

    async def for_case(self, case_id: int) -> list[AuditRecord]:
        async with aiosqlite.connect(self._path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT id, event_type, record_id, case_id, kind, target_id, operator_id, created_at_iso, details_json
                FROM moderation_audit
                WHERE case_id = ?
                ORDER BY id ASC
                """,
                (int(case_id),),
            ) as cur:
                rows = await cur.fetchall()
        return [self._from_row(r) for r in rows]
