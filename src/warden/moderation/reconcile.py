from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import BackendError
from .kinds import ActionKinds
from .models import ModerationAction

log = logging.getLogger("warden.moderation.reconcile")


@dataclass(frozen=True)
class Mismatch:
    record: ModerationAction
    # None when the backend could not be asked.
    applied: Optional[bool]
    detail: str


class ReconciliationChecker:
    """Compares record-store intent with what the platform actually enforces.

    The backend is ground truth for "is this enforced right now"; the store is
    ground truth for "should it be and why". Nothing here repairs a mismatch.
    """

    def __init__(self, kinds: ActionKinds) -> None:
        self._kinds = kinds

    async def is_effectively_applied(self, kind: str, target_id: int) -> bool:
        return await self._kinds.get(kind).is_applied(target_id)

    async def find_mismatches(self, records: Iterable[ModerationAction]) -> list[Mismatch]:
        """Check active records against the backend, one call per record."""
        mismatches: list[Mismatch] = []
        for record in records:
            if not record.active:
                continue
            if record.kind not in self._kinds:
                mismatches.append(Mismatch(record, None, f"no backend for kind {record.kind!r}"))
                continue
            try:
                applied = await self.is_effectively_applied(record.kind, record.target_id)
            except BackendError as e:
                mismatches.append(Mismatch(record, None, f"backend check failed: {e}"))
                continue
            if not applied:
                mismatches.append(Mismatch(record, False, "record is active but backend shows no enforcement"))
        for m in mismatches:
            log.warning("Case #%d (%s on %d): %s", m.record.case_id, m.record.kind, m.record.target_id, m.detail)
        return mismatches
