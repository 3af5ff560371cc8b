"""Data models for inbound GitHub issue events."""

from dataclasses import dataclass

# Comment prefix that requests an autonomous fix
FIX_TRIGGER = "/ralph"


@dataclass(frozen=True)
class Issue:
    """A GitHub issue as seen by the relay."""

    repository: str
    number: int
    title: str
    body: str
    author: str = "unknown"
    labels: tuple[str, ...] = ()

    @property
    def text(self) -> str:
        """Title and body joined by a single space."""
        return f"{self.title} {self.body}"


@dataclass(frozen=True)
class IssueOpened:
    """An ``issues`` event with action ``opened``."""

    issue: Issue


@dataclass(frozen=True)
class CommentCreated:
    """An ``issue_comment`` event with action ``created``."""

    issue: Issue
    comment_text: str
    comment_author: str = "unknown"

    @property
    def is_fix_trigger(self) -> bool:
        """True if the comment starts with the fix trigger (case-sensitive)."""
        return self.comment_text.startswith(FIX_TRIGGER)
