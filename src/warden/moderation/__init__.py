"""Moderation action lifecycle.

Self-contained modules:
- duration (human duration grammar)
- kinds (per-kind enforcement against Discord)
- reconcile (record intent vs. platform reality)
- scheduler (sleep list of pending expirations)
- engine (issue / revoke / expire / expunge orchestration)
- notify (DM, mod-log and critical-channel side effects)
"""

from .engine import ModerationEngine
from .errors import ModerationError
from .models import ModerationAction, Subject

__all__ = ["ModerationEngine", "ModerationError", "ModerationAction", "Subject"]
