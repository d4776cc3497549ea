from __future__ import annotations

from typing import Optional

import aiosqlite

from ..moderation.models import ActionDraft, Disposition, ModerationAction
from .base import BaseService

_COLUMNS = """
    id, case_id, kind, target_id, target_label, operator_id, operator_label,
    reason, issued_at, duration, active,
    removed_by, removed_by_label, removed_reason, removed_at,
    expunged_by, expunged_by_label, expunged_reason, expunged_at,
    expired_at, origin_reference
"""


def _disposition(row: aiosqlite.Row, prefix: str) -> Optional[Disposition]:
    if row[f"{prefix}_at"] is None:
        return None
    return Disposition(
        operator_id=int(row[f"{prefix}_by"]),
        operator_label=str(row[f"{prefix}_by_label"]),
        reason=row[f"{prefix}_reason"],
        timestamp=int(row[f"{prefix}_at"]),
    )


class ModerationStore(BaseService[ModerationAction]):
    """Durable moderation records; the source of truth for intent.

    Every update that ends an action is conditioned on the current flags so
    that a manual revoke and a scheduled expiry racing on the same record
    resolve to exactly one winner. Losers get ``None`` back.
    """

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS moderation_actions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                case_id INTEGER NOT NULL UNIQUE,
                kind TEXT NOT NULL,
                target_id INTEGER NOT NULL,
                target_label TEXT NOT NULL,
                operator_id INTEGER NOT NULL,
                operator_label TEXT NOT NULL,
                reason TEXT NULL,
                issued_at INTEGER NOT NULL,
                duration INTEGER NULL,
                active INTEGER NOT NULL DEFAULT 1,
                removed_by INTEGER NULL,
                removed_by_label TEXT NULL,
                removed_reason TEXT NULL,
                removed_at INTEGER NULL,
                expunged_by INTEGER NULL,
                expunged_by_label TEXT NULL,
                expunged_reason TEXT NULL,
                expunged_at INTEGER NULL,
                expired_at INTEGER NULL,
                origin_reference TEXT NULL
            )
            """
        )
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS moderation_case_sequence (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                last_case_id INTEGER NOT NULL
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_modactions_target ON moderation_actions (target_id, kind, active)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_modactions_active ON moderation_actions (active, duration)")

    def _from_row(self, row: aiosqlite.Row) -> ModerationAction:
        return ModerationAction(
            id=int(row["id"]),
            case_id=int(row["case_id"]),
            kind=str(row["kind"]),
            target_id=int(row["target_id"]),
            target_label=str(row["target_label"]),
            operator_id=int(row["operator_id"]),
            operator_label=str(row["operator_label"]),
            reason=row["reason"],
            issued_at=int(row["issued_at"]),
            duration=(int(row["duration"]) if row["duration"] is not None else None),
            active=bool(row["active"]),
            removed=_disposition(row, "removed"),
            expunged=_disposition(row, "expunged"),
            expired_at=(int(row["expired_at"]) if row["expired_at"] is not None else None),
            origin_reference=row["origin_reference"],
        )

    @property
    def _get_query(self) -> str:
        return f"SELECT {_COLUMNS} FROM moderation_actions WHERE id = ?"

    async def _select_one(self, db: aiosqlite.Connection, record_id: int) -> ModerationAction:
        async with db.execute(self._get_query, (int(record_id),)) as cur:
            row = await cur.fetchone()
        return self._from_row(row)

    async def _fetch_all(self, query: str, params: tuple = ()) -> list[ModerationAction]:
        async with aiosqlite.connect(self._path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cur:
                rows = await cur.fetchall()
        return [self._from_row(r) for r in rows]

    async def create_action(self, draft: ActionDraft) -> ModerationAction:
        """Insert a new active record, assigning the next case number."""
        async with self._transaction() as db:
            await db.execute(
                """
                INSERT INTO moderation_case_sequence (id, last_case_id) VALUES (1, 1)
                ON CONFLICT(id) DO UPDATE SET last_case_id = last_case_id + 1
                """
            )
            async with db.execute("SELECT last_case_id FROM moderation_case_sequence WHERE id = 1") as cur:
                row = await cur.fetchone()
            case_id = int(row[0])
            cur = await db.execute(
                """
                INSERT INTO moderation_actions (
                    case_id, kind, target_id, target_label, operator_id, operator_label,
                    reason, issued_at, duration, active, origin_reference
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?)
                """,
                (
                    case_id,
                    draft.kind,
                    int(draft.target_id),
                    draft.target_label,
                    int(draft.operator_id),
                    draft.operator_label,
                    draft.reason,
                    int(draft.issued_at),
                    (int(draft.duration) if draft.duration is not None else None),
                    draft.origin_reference,
                ),
            )
            record = await self._select_one(db, int(cur.lastrowid))
        self._logger.info("Created case #%d (%s on %d)", record.case_id, record.kind, record.target_id)
        return record

    async def get_by_case(self, case_id: int) -> Optional[ModerationAction]:
        rows = await self._fetch_all(
            f"SELECT {_COLUMNS} FROM moderation_actions WHERE case_id = ?",
            (int(case_id),),
        )
        return rows[0] if rows else None

    async def find_active(self, target_id: int, kind: str) -> Optional[ModerationAction]:
        rows = await self._fetch_all(
            f"SELECT {_COLUMNS} FROM moderation_actions WHERE target_id = ? AND kind = ? AND active = 1 ORDER BY id DESC LIMIT 1",
            (int(target_id), str(kind)),
        )
        return rows[0] if rows else None

    async def list_active(self, target_id: Optional[int] = None) -> list[ModerationAction]:
        if target_id is None:
            return await self._fetch_all(f"SELECT {_COLUMNS} FROM moderation_actions WHERE active = 1 ORDER BY id")
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM moderation_actions WHERE active = 1 AND target_id = ? ORDER BY id",
            (int(target_id),),
        )

    async def list_active_with_expiry(self) -> list[ModerationAction]:
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM moderation_actions WHERE active = 1 AND duration IS NOT NULL ORDER BY issued_at + duration"
        )

    async def list_for_target(self, target_id: int, limit: int = 10) -> list[ModerationAction]:
        limit = max(1, min(50, int(limit)))
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM moderation_actions WHERE target_id = ? ORDER BY case_id DESC LIMIT ?",
            (int(target_id), limit),
        )

    async def update_on_revoke(self, record_id: int, removed: Disposition) -> Optional[ModerationAction]:
        async with self._transaction() as db:
            cur = await db.execute(
                """
                UPDATE moderation_actions
                SET active = 0, removed_by = ?, removed_by_label = ?, removed_reason = ?, removed_at = ?
                WHERE id = ? AND active = 1
                """,
                (int(removed.operator_id), removed.operator_label, removed.reason, int(removed.timestamp), int(record_id)),
            )
            if cur.rowcount == 0:
                return None
            return await self._select_one(db, record_id)

    async def update_on_expire(self, record_id: int, expired_at: int) -> Optional[ModerationAction]:
        async with self._transaction() as db:
            cur = await db.execute(
                "UPDATE moderation_actions SET active = 0, expired_at = ? WHERE id = ? AND active = 1",
                (int(expired_at), int(record_id)),
            )
            if cur.rowcount == 0:
                return None
            return await self._select_one(db, record_id)

    async def update_on_expunge(
        self, record_id: int, expunged: Disposition
    ) -> Optional[tuple[ModerationAction, bool]]:
        """Mark a record expunged. Returns the record and whether it was active before."""
        async with self._transaction() as db:
            async with db.execute(
                "SELECT active FROM moderation_actions WHERE id = ? AND expunged_at IS NULL",
                (int(record_id),),
            ) as cur:
                row = await cur.fetchone()
            if row is None:
                return None
            was_active = bool(row["active"])
            await db.execute(
                """
                UPDATE moderation_actions
                SET active = 0, expunged_by = ?, expunged_by_label = ?, expunged_reason = ?, expunged_at = ?
                WHERE id = ?
                """,
                (int(expunged.operator_id), expunged.operator_label, expunged.reason, int(expunged.timestamp), int(record_id)),
            )
            return await self._select_one(db, record_id), was_active
