"""GitHub repository client.

Reads the file tree of an organization's linked repository so the assessment
agent can see which parts of the codebase a request is likely to touch.
Requires a token from the organization's GITHUB integration or the
GITHUB_TOKEN environment variable.
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from ..config import HTTP_TIMEOUT_SECONDS
from ..errors import ExternalFailure

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class GitHubError(ExternalFailure):
    """Error during a GitHub API call."""

    def __init__(self, message: str):
        super().__init__("github", message)


@dataclass
class TreeEntry:
    """A file in a repository tree."""

    path: str
    size: int


def get_github_token() -> str | None:
    """Get GitHub token from environment."""
    return os.getenv("GITHUB_TOKEN")


class GitHubClient:
    """Minimal GitHub REST client."""

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=HTTP_TIMEOUT_SECONDS,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
            },
        )

    def get_repo_tree(self, owner: str, repo: str, branch: str) -> list[TreeEntry]:
        """
        List every file (blob) in a repository branch.

        Args:
            owner: Repository owner
            repo: Repository name
            branch: Branch or tree SHA

        Returns:
            List of TreeEntry objects

        Raises:
            GitHubError: If the API call fails
        """
        segments = [quote(part, safe="") for part in (owner, repo, branch)]
        path = "/repos/{}/{}/git/trees/{}".format(*segments)
        try:
            with self._client() as client:
                response = client.get(path, params={"recursive": "1"})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                raise GitHubError("Invalid GitHub token") from e
            if e.response.status_code == 404:
                raise GitHubError(f"Repository {owner}/{repo}@{branch} not found") from e
            raise GitHubError(f"GitHub API error: {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise GitHubError("GitHub API timeout") from e
        except httpx.HTTPError as e:
            raise GitHubError(f"GitHub request failed: {e}") from e
        except ValueError as e:
            raise GitHubError(f"GitHub returned a non-JSON tree for {owner}/{repo}") from e

        if not isinstance(data, dict) or not isinstance(data.get("tree", []), list):
            raise GitHubError(f"Unexpected GitHub tree payload for {owner}/{repo}")

        entries = [
            TreeEntry(path=item.get("path", ""), size=item.get("size", 0))
            for item in data.get("tree", [])
            if isinstance(item, dict) and item.get("type") == "blob"
        ]
        if data.get("truncated"):
            logger.warning(f"GitHub tree for {owner}/{repo} was truncated at {len(entries)} files")
        logger.info(f"GitHub returned {len(entries)} files for {owner}/{repo}@{branch}")
        return entries


__all__ = [
    "GitHubClient",
    "GitHubError",
    "TreeEntry",
    "get_github_token",
]
