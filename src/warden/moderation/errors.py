from __future__ import annotations


class ModerationError(Exception):
    """Base class for lifecycle failures.

    ``str(error)`` is safe to show to the operator who issued the command.
    """


class InvalidInput(ModerationError):
    pass


class InvalidDuration(InvalidInput):
    def __init__(self, text: str | None = None) -> None:
        super().__init__("Invalid duration" if not text else f"Invalid duration: {text!r}")
        self.text = text


class UnknownKind(InvalidInput):
    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown moderation kind: {kind}")
        self.kind = kind


class UnknownCase(InvalidInput):
    def __init__(self, case_id: int) -> None:
        super().__init__(f"Case #{case_id} does not exist")
        self.case_id = case_id


class PreconditionFailed(ModerationError):
    pass


class TargetExempt(PreconditionFailed):
    pass


class AlreadyApplied(PreconditionFailed):
    pass


class NotCurrentlyActive(PreconditionFailed):
    pass


class NotActuallyApplied(PreconditionFailed):
    """The record said active but the backend had nothing to remove."""


class AlreadyExpunged(PreconditionFailed):
    pass


class EnforcementFailed(ModerationError):
    pass


class OperationFailed(ModerationError):
    """Unexpected failure; the message is generic on purpose."""


class BackendError(Exception):
    """Raised by enforcement backends when the platform call fails."""
