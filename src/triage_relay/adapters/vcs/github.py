"""GitHub REST adapter for posting issue comments.

Uses an httpx AsyncClient against the GitHub REST API. Repository names
are validated before they are placed in a URL path.
"""

from __future__ import annotations

import httpx
import structlog

from ...config.schema import GitHubConfig
from ...utils.async_helpers import CommentError
from ...utils.security import validate_name

log = structlog.get_logger()

GITHUB_API_VERSION = "2022-11-28"


class GitHubCommenter:
    """GitHub adapter implementing the Commenter protocol.

    Example:
        config = GitHubConfig(token="ghp_...", owner="acme")
        commenter = GitHubCommenter(config)

        await commenter.post_comment("widgets", 42, "Thanks!")
        await commenter.aclose()
    """

    def __init__(
        self,
        config: GitHubConfig,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the GitHub commenter.

        Args:
            config: GitHub-specific configuration.
            timeout: Request timeout in seconds.
            client: Preconfigured HTTP client. If None, creates one.
        """
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.api_url,
            timeout=timeout,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"token {self._config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def comments_url(self, repository: str, issue_number: int) -> str:
        """Return the comments endpoint for an issue.

        Raises:
            CommentError: If the repository name is unsafe.
        """
        if not validate_name(repository):
            raise CommentError(f"Invalid repository name: {repository!r}")
        base = self._config.api_url.rstrip("/")
        return f"{base}/repos/{self._config.owner}/{repository}/issues/{issue_number}/comments"

    async def post_comment(self, repository: str, issue_number: int, body: str) -> None:
        """Post a Markdown comment on an issue.

        Raises:
            CommentError: If the request fails or GitHub rejects it.
        """
        if not self._config.token:
            raise CommentError("GitHub token not configured")

        url = self.comments_url(repository, issue_number)

        try:
            response = await self._client.post(url, headers=self._headers(), json={"body": body})
        except httpx.HTTPError as e:
            log.error(
                "github_comment_request_failed",
                repository=repository,
                issue_number=issue_number,
                error=str(e),
            )
            raise CommentError(f"GitHub request failed: {e}") from e

        if not response.is_success:
            log.error(
                "github_comment_rejected",
                repository=repository,
                issue_number=issue_number,
                status_code=response.status_code,
            )
            raise CommentError(f"GitHub API error {response.status_code}: {response.text}")

        log.info(
            "github_comment_posted",
            repository=repository,
            issue_number=issue_number,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
