"""Abstract interface for posting issue comments."""

from typing import Protocol


class Commenter(Protocol):
    """Posts comments on issues in the version control system."""

    async def post_comment(self, repository: str, issue_number: int, body: str) -> None:
        """
        Post a comment on an issue.

        Args:
            repository: Repository name (without owner)
            issue_number: Issue number
            body: Markdown comment body

        Raises:
            CommentError: If the comment cannot be posted
        """
        ...
