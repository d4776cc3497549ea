from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

from ..services.moderation_audit_store import ModerationAuditStore
from .duration import parse_duration
from .errors import (
    AlreadyApplied,
    AlreadyExpunged,
    BackendError,
    EnforcementFailed,
    ModerationError,
    NotActuallyApplied,
    NotCurrentlyActive,
    OperationFailed,
    TargetExempt,
    UnknownCase,
)
from .kinds import ActionKinds, EnforcementBackend
from .models import ActionDraft, AuditEvent, Disposition, ModerationAction, Subject
from .notify import ModerationNotifier
from .reconcile import Mismatch, ReconciliationChecker
from .scheduler import Clock, ExpiryScheduler

if TYPE_CHECKING:
    from ..services.moderation_store import ModerationStore

log = logging.getLogger("warden.moderation.engine")

T = TypeVar("T")
ExemptionCheck = Callable[[int], Awaitable[bool]]


class ModerationEngine:
    """Issues, revokes, expires and expunges moderation actions.

    Order of effects on issue: the platform enforcement must succeed before a
    record is written, so no record ever claims an action that was never
    applied. Revoke and expiry both start with a conditional flip of the
    record's ``active`` flag; whichever lands first performs the removal and
    the audit entry, the other does nothing.
    """

    def __init__(
        self,
        *,
        store: ModerationStore,
        kinds: ActionKinds,
        notifier: ModerationNotifier,
        audit_store: Optional[ModerationAuditStore] = None,
        is_exempt: Optional[ExemptionCheck] = None,
        clock: Clock = time.time,
        max_sleep_seconds: float = 300.0,
    ) -> None:
        self._store = store
        self._kinds = kinds
        self._notifier = notifier
        self._audit_store = audit_store
        self._is_exempt = is_exempt
        self._clock = clock
        # One issue at a time per (kind, target): check, apply and insert as a unit.
        self._issue_locks: dict[tuple[str, int], asyncio.Lock] = {}
        self.checker = ReconciliationChecker(kinds)
        self.scheduler = ExpiryScheduler(self.expire_one, clock=clock, max_sleep_seconds=max_sleep_seconds)

    @property
    def kinds(self) -> ActionKinds:
        return self._kinds

    def _now(self) -> int:
        return int(self._clock())

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(timespec="seconds")

    # -- startup / shutdown -------------------------------------------------

    async def start(self) -> None:
        await self.rehydrate()
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()

    async def rehydrate(self) -> int:
        """Rebuild the sleep list from the store and fire anything overdue."""
        records = await self._store.list_active_with_expiry()
        self.scheduler.rehydrate((r.id, r.expires_at) for r in records if r.expires_at is not None)
        fired = await self.scheduler.run_due()
        if fired:
            log.info("Caught up on %d overdue expirations", fired)
        return len(records)

    async def check_consistency(self) -> list[Mismatch]:
        mismatches = await self.checker.find_mismatches(await self._store.list_active())
        if mismatches:
            lines = [f"case #{m.record.case_id} ({m.record.kind} on {m.record.target_label}): {m.detail}" for m in mismatches[:20]]
            await self._best_effort(
                "critical report",
                self._notifier.report_critical(f"{len(mismatches)} moderation record(s) disagree with the server:\n" + "\n".join(lines)),
            )
        return mismatches

    # -- helpers ------------------------------------------------------------

    async def _best_effort(self, what: str, op: Awaitable[object]) -> None:
        try:
            await op
        except Exception:
            log.exception("%s failed", what)

    async def _guarded(self, what: str, op: Awaitable[T]) -> T:
        try:
            return await op
        except ModerationError:
            raise
        except Exception as e:
            log.exception("Unexpected failure while %s", what)
            await self._best_effort("critical report", self._notifier.report_critical(f"Unexpected failure while {what}", e))
            raise OperationFailed(f"Error while {what}") from e

    async def _check_applied(self, backend: EnforcementBackend, target_id: int) -> bool:
        try:
            return await self.checker.is_effectively_applied(backend.kind, target_id)
        except BackendError as e:
            raise EnforcementFailed(f"Could not check {backend.kind} state: {e}") from e

    async def _audit(self, event: AuditEvent, action: ModerationAction, note: Optional[str] = None) -> None:
        if self._audit_store is not None:
            ended = action.removed or action.expunged
            details = {"status": action.status, "reason": action.reason}
            if note:
                details["note"] = note
            await self._best_effort(
                "audit trail",
                self._audit_store.add(
                    event_type=event.value,
                    created_at_iso=self._now_iso(),
                    details=details,
                    record_id=action.id,
                    case_id=action.case_id,
                    kind=action.kind,
                    target_id=action.target_id,
                    operator_id=(ended.operator_id if ended else action.operator_id),
                ),
            )
        await self._best_effort("audit post", self._notifier.post_audit(event, action, note))

    async def _enforcement_failure(self, action: ModerationAction, error: BaseException) -> None:
        log.error("Case #%d: %s removal failed after the record was closed: %s", action.case_id, action.kind, error)
        await self._audit(AuditEvent.ENFORCEMENT_FAILED, action, note=str(error))
        await self._best_effort(
            "critical report",
            self._notifier.report_critical(
                f"Case #{action.case_id}: record closed but {action.kind} removal for {action.target_label} failed", error
            ),
        )

    # -- issue --------------------------------------------------------------

    async def issue(
        self,
        kind: str,
        target: Subject,
        operator: Subject,
        duration: Optional[str] = None,
        reason: Optional[str] = None,
        origin_reference: Optional[str] = None,
    ) -> ModerationAction:
        return await self._guarded(
            f"applying {kind} to {target.label}",
            self._issue(kind, target, operator, duration, reason, origin_reference),
        )

    async def _issue(
        self,
        kind: str,
        target: Subject,
        operator: Subject,
        duration: Optional[str],
        reason: Optional[str],
        origin_reference: Optional[str],
    ) -> ModerationAction:
        backend = self._kinds.get(kind)
        if self._is_exempt is not None and await self._is_exempt(target.id):
            raise TargetExempt("Cannot apply moderation to user")
        seconds = parse_duration(duration)
        async with self._issue_locks.setdefault((kind, target.id), asyncio.Lock()):
            action = await self._apply_and_record(backend, target, operator, seconds, reason, origin_reference)
        log.info("Case #%d: %s %s by %s", action.case_id, target.label, backend.verb, operator.label)
        await self._audit(AuditEvent.ISSUED, action)
        return action

    async def _apply_and_record(
        self,
        backend: EnforcementBackend,
        target: Subject,
        operator: Subject,
        seconds: Optional[int],
        reason: Optional[str],
        origin_reference: Optional[str],
    ) -> ModerationAction:
        kind = backend.kind
        if await self._check_applied(backend, target.id):
            raise AlreadyApplied(f"{target.label} is already {backend.verb}")
        if await self._store.find_active(target.id, kind) is not None:
            raise AlreadyApplied(f"{target.label} already has an active {kind} case")

        draft = ActionDraft(
            kind=kind,
            target_id=target.id,
            target_label=target.label,
            operator_id=operator.id,
            operator_label=operator.label,
            reason=reason,
            issued_at=self._now(),
            duration=seconds,
            origin_reference=origin_reference,
        )
        # Before enforcement: a ban would otherwise block the DM.
        await self._best_effort(f"notifying {target.id}", self._notifier.notify_target(draft, backend.verb))

        try:
            await backend.apply(target.id, reason)
        except BackendError as e:
            log.warning("%s of %d failed: %s", kind, target.id, e)
            raise EnforcementFailed(f"Could not apply {kind} to {target.label}") from e

        action = await self._store.create_action(draft)
        if action.expires_at is not None:
            self.scheduler.schedule(action.id, action.expires_at)
        return action

    # -- revoke -------------------------------------------------------------

    async def revoke(self, kind: str, target: Subject, operator: Subject, reason: Optional[str] = None) -> ModerationAction:
        return await self._guarded(
            f"removing {kind} from {target.label}",
            self._revoke(kind, target, operator, reason),
        )

    async def _revoke(self, kind: str, target: Subject, operator: Subject, reason: Optional[str]) -> ModerationAction:
        backend = self._kinds.get(kind)
        record = await self._store.find_active(target.id, kind)
        updated = None
        if record is not None:
            removed = Disposition(operator_id=operator.id, operator_label=operator.label, reason=reason, timestamp=self._now())
            updated = await self._store.update_on_revoke(record.id, removed)
        if updated is None:
            raise NotCurrentlyActive(f"{target.label} is not {backend.verb}")

        try:
            try:
                applied = await self._check_applied(backend, target.id)
            except EnforcementFailed as e:
                await self._enforcement_failure(updated, e)
                raise
            if not applied:
                log.warning("Case #%d: record was active but %d is not %s", updated.case_id, target.id, backend.verb)
                await self._audit(AuditEvent.MISMATCH, updated, note=f"closed on revoke; backend showed no {kind}")
                raise NotActuallyApplied(f"{target.label} is not actually {backend.verb}; case #{updated.case_id} has been closed")
            try:
                await backend.remove(target.id, reason)
            except BackendError as e:
                await self._enforcement_failure(updated, e)
                raise EnforcementFailed(
                    f"Case #{updated.case_id} was closed but {target.label} could not be {backend.undo_verb}"
                ) from e
        finally:
            self.scheduler.cancel(updated.id)

        log.info("Case #%d: %s %s by %s", updated.case_id, target.label, backend.undo_verb, operator.label)
        await self._audit(AuditEvent.REVOKED, updated)
        return updated

    # -- expire -------------------------------------------------------------

    async def expire_one(self, record_id: int) -> None:
        """Scheduler callback. There is no one to reply to, so failures go to the critical sink."""
        try:
            await self._expire_one(record_id)
        except Exception as e:
            log.exception("Expiry of record %d failed", record_id)
            await self._best_effort("critical report", self._notifier.report_critical(f"Expiry of record {record_id} failed", e))

    async def _expire_one(self, record_id: int) -> None:
        record = await self._store.get(record_id)
        if record is None or not record.active:
            log.debug("Record %d already inactive; nothing to expire", record_id)
            return
        expired = await self._store.update_on_expire(record_id, self._now())
        if expired is None:
            log.debug("Record %d was closed concurrently; skipping expiry", record_id)
            return

        backend = self._kinds.get(expired.kind)
        try:
            await backend.remove(expired.target_id, f"Case {expired.case_id} expired")
        except BackendError as e:
            await self._enforcement_failure(expired, e)
            return
        log.info("Case #%d: %s expired for %s", expired.case_id, expired.kind, expired.target_label)
        await self._audit(AuditEvent.EXPIRED, expired)

    # -- expunge ------------------------------------------------------------

    async def expunge(self, case_id: int, operator: Subject, reason: Optional[str] = None) -> ModerationAction:
        return await self._guarded(f"expunging case #{case_id}", self._expunge(case_id, operator, reason))

    async def _expunge(self, case_id: int, operator: Subject, reason: Optional[str]) -> ModerationAction:
        record = await self._store.get_by_case(case_id)
        if record is None:
            raise UnknownCase(case_id)
        if record.expunged is not None:
            raise AlreadyExpunged(f"Case #{case_id} is already expunged")
        expunged = Disposition(operator_id=operator.id, operator_label=operator.label, reason=reason, timestamp=self._now())
        result = await self._store.update_on_expunge(record.id, expunged)
        if result is None:
            raise AlreadyExpunged(f"Case #{case_id} is already expunged")
        updated, was_active = result

        note = None
        if was_active:
            self.scheduler.cancel(updated.id)
            backend = self._kinds.get(updated.kind)
            try:
                applied = await self._check_applied(backend, updated.target_id)
            except EnforcementFailed as e:
                await self._enforcement_failure(updated, e)
                raise
            if applied:
                try:
                    await backend.remove(updated.target_id, reason)
                except BackendError as e:
                    await self._enforcement_failure(updated, e)
                    raise EnforcementFailed(
                        f"Case #{case_id} was expunged but {updated.target_label} could not be {backend.undo_verb}"
                    ) from e
                note = f"{backend.undo_verb} as part of the expunge"
            else:
                note = f"no {updated.kind} was in effect"
        log.info("Case #%d expunged by %s", case_id, operator.label)
        await self._audit(AuditEvent.EXPUNGED, updated, note=note)
        return updated

    # -- rejoin -------------------------------------------------------------

    async def reapply_for_target(self, target_id: int) -> list[ModerationAction]:
        """Re-apply role-style actions to a member who left and came back."""
        reapplied: list[ModerationAction] = []
        now = self._now()
        for record in await self._store.list_active(target_id):
            if record.kind not in self._kinds:
                continue
            backend = self._kinds.get(record.kind)
            if not backend.reapply_on_rejoin:
                continue
            if record.expires_at is not None and record.expires_at <= now:
                # The scheduler will close it.
                continue
            try:
                if await backend.is_applied(target_id):
                    continue
                await backend.apply(target_id, f"Re-applying case {record.case_id}")
            except BackendError as e:
                log.warning("Case #%d: could not re-apply %s to %d: %s", record.case_id, record.kind, target_id, e)
                await self._best_effort(
                    "critical report",
                    self._notifier.report_critical(f"Case #{record.case_id}: could not re-apply {record.kind} to {record.target_label}", e),
                )
                continue
            reapplied.append(record)
            await self._audit(AuditEvent.REAPPLIED, record)
        return reapplied

    # -- lookup -------------------------------------------------------------

    async def get_case(self, case_id: int) -> ModerationAction:
        record = await self._store.get_by_case(case_id)
        if record is None:
            raise UnknownCase(case_id)
        return record

    async def history(self, target_id: int, limit: int = 10) -> list[ModerationAction]:
        return await self._store.list_for_target(target_id, limit)
