"""Data models for triage decisions and their dispatch outcomes."""

from dataclasses import dataclass
from enum import Enum


class Decision(Enum):
    """Routing outcome chosen by the decision engine."""

    AUTO_ACT = "auto_act"
    OFFER = "offer"
    CLARIFY = "clarify"
    NOTIFY = "notify"


class ActionClass(Enum):
    """Kind of work admitted for an issue; part of the dedup key."""

    TRIAGE = "triage"
    FIX = "fix"


@dataclass(frozen=True)
class DedupKey:
    """Identity of one admitted unit of work."""

    repository: str
    issue_number: int
    action_class: ActionClass

    def __str__(self) -> str:
        return f"{self.repository}#{self.issue_number}:{self.action_class.value}"


@dataclass(frozen=True)
class Outcome:
    """What the dispatcher did for one decision."""

    decision: Decision
    fix_started: bool = False
    comment_posted: bool = False
    notified: bool = False
    errors: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        """True if every attempted side effect succeeded."""
        return not self.errors
