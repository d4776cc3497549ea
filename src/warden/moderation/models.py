from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Subject:
    """An account referenced by an action: the target or the operator."""

    id: int
    label: str


@dataclass(frozen=True)
class Disposition:
    """Who ended an action early, and why."""

    operator_id: int
    operator_label: str
    reason: Optional[str]
    timestamp: int


@dataclass(frozen=True)
class ActionDraft:
    """Creation-time fields of an action, before the store assigns ids."""

    kind: str
    target_id: int
    target_label: str
    operator_id: int
    operator_label: str
    reason: Optional[str]
    issued_at: int
    # Seconds; None means indefinite.
    duration: Optional[int]
    origin_reference: Optional[str] = None

    @property
    def expires_at(self) -> Optional[int]:
        if self.duration is None:
            return None
        return self.issued_at + self.duration


@dataclass(frozen=True)
class ModerationAction:
    id: int
    case_id: int
    kind: str
    target_id: int
    target_label: str
    operator_id: int
    operator_label: str
    reason: Optional[str]
    issued_at: int
    duration: Optional[int]
    active: bool
    removed: Optional[Disposition] = None
    expunged: Optional[Disposition] = None
    expired_at: Optional[int] = None
    origin_reference: Optional[str] = None

    @property
    def expires_at(self) -> Optional[int]:
        if self.duration is None:
            return None
        return self.issued_at + self.duration

    @property
    def status(self) -> str:
        if self.active:
            return "active"
        if self.expunged is not None:
            return "expunged"
        if self.removed is not None:
            return "removed"
        if self.expired_at is not None:
            return "expired"
        return "inactive"


class AuditEvent(Enum):
    ISSUED = "issued"
    REVOKED = "revoked"
    EXPIRED = "expired"
    EXPUNGED = "expunged"
    ENFORCEMENT_FAILED = "enforcement_failed"
    MISMATCH = "mismatch"
    REAPPLIED = "reapplied"
