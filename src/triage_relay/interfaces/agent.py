"""Abstract interface for the autonomous fix agent."""

from typing import Protocol


class FixInvoker(Protocol):
    """Starts an autonomous code-fix attempt for an issue.

    The call returns once the agent has been started. It does not wait for
    the fix to complete.
    """

    async def start_fix(self, repository: str, issue_number: int, instructions: str) -> None:
        """
        Start a fix attempt.

        Args:
            repository: Repository name (without owner)
            issue_number: Issue number
            instructions: Prompt handed to the fix agent

        Raises:
            SpawnError: If the agent could not be started
        """
        ...
