"""Pydantic models for the GitHub webhook payloads the relay consumes.

Only the fields the relay reads are declared; everything else in the
payload is ignored. Fields are optional so that a payload missing the
repository name or issue number can be answered with a 400 rather than a
validation traceback.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from triage_relay.models.issue import CommentCreated, Issue, IssueOpened


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class UserPayload(_Payload):
    login: str = "unknown"


class LabelPayload(_Payload):
    name: str


class RepositoryPayload(_Payload):
    name: str | None = None


class IssuePayload(_Payload):
    number: int | None = None
    title: str = ""
    body: str | None = None
    user: UserPayload | None = None
    labels: list[LabelPayload | str] = []

    def label_names(self) -> tuple[str, ...]:
        return tuple(label if isinstance(label, str) else label.name for label in self.labels)


class CommentPayload(_Payload):
    body: str = ""
    user: UserPayload | None = None


class _IssueEventPayload(_Payload):
    action: str = ""
    issue: IssuePayload | None = None
    repository: RepositoryPayload | None = None

    @property
    def repository_name(self) -> str | None:
        return self.repository.name if self.repository else None

    @property
    def issue_number(self) -> int | None:
        return self.issue.number if self.issue else None

    def to_issue(self) -> Issue:
        """Build the relay's Issue.

        Raises:
            ValueError: If the repository name or issue number is missing
        """
        if not self.repository_name or not self.issue_number or self.issue is None:
            raise ValueError("Missing repository name or issue number")

        return Issue(
            repository=self.repository_name,
            number=self.issue_number,
            title=self.issue.title,
            body=self.issue.body or "",
            author=self.issue.user.login if self.issue.user else "unknown",
            labels=self.issue.label_names(),
        )


class IssuesEventPayload(_IssueEventPayload):
    """Body of an ``issues`` event."""

    def to_event(self) -> IssueOpened:
        return IssueOpened(issue=self.to_issue())


class IssueCommentEventPayload(_IssueEventPayload):
    """Body of an ``issue_comment`` event."""

    comment: CommentPayload | None = None

    @property
    def comment_text(self) -> str:
        return self.comment.body if self.comment else ""

    def to_event(self) -> CommentCreated:
        author = self.comment.user.login if self.comment and self.comment.user else "unknown"
        return CommentCreated(
            issue=self.to_issue(),
            comment_text=self.comment_text,
            comment_author=author,
        )
