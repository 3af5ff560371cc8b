"""Data models for issue classification."""

from dataclasses import dataclass
from enum import Enum


class Category(Enum):
    """Kind of issue."""

    BUG = "bug"
    FEATURE = "feature"
    ENHANCEMENT = "enhancement"
    QUESTION = "question"
    DOCS = "docs"
    CHORE = "chore"


class Severity(Enum):
    """Impact of an issue. Display only; never used for routing."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Classification:
    """Validated judgment about an issue produced by the analysis provider."""

    category: Category
    severity: Severity
    auto_fixable: bool
    confidence: float  # 0.0 to 1.0 inclusive
    rationale: str
    open_questions: tuple[str, ...] = ()
    acceptance_criteria: tuple[str, ...] = ()
    fix_instructions: str | None = None

    @property
    def needs_clarification(self) -> bool:
        """True when the provider asked questions, i.e. the issue is under-specified."""
        return len(self.open_questions) > 0
