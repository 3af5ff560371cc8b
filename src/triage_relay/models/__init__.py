"""Data models and transfer objects."""

from .classification import Category, Classification, Severity
from .decision import ActionClass, Decision, DedupKey, Outcome
from .issue import FIX_TRIGGER, CommentCreated, Issue, IssueOpened
from .policy import DISABLED_POLICY, RepositoryPolicy

__all__ = [
    # Issue models
    "FIX_TRIGGER",
    "CommentCreated",
    "Issue",
    "IssueOpened",
    # Classification models
    "Category",
    "Classification",
    "Severity",
    # Policy models
    "DISABLED_POLICY",
    "RepositoryPolicy",
    # Decision models
    "ActionClass",
    "Decision",
    "DedupKey",
    "Outcome",
]
