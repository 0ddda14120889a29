"""Jira Cloud REST client.

Creates epics and stories in a Jira project. Credentials come from the
organization's JIRA integration (``baseUrl``, ``email``, ``apiToken``,
optional ``defaultProjectKey``) or the JIRA_* environment variables.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from ..config import HTTP_TIMEOUT_SECONDS
from ..errors import ExternalFailure

logger = logging.getLogger(__name__)


class JiraError(ExternalFailure):
    """Error during a Jira API call."""

    def __init__(self, message: str):
        super().__init__("jira", message)


@dataclass
class JiraIssue:
    """A created Jira issue."""

    id: str
    key: str
    url: str


def text_to_adf(text: str) -> dict[str, Any]:
    """Convert plain text to Atlassian Document Format.

    Blank lines separate paragraphs; single newlines inside a paragraph
    become spaces.
    """
    paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]
    return {
        "version": 1,
        "type": "doc",
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": p.strip().replace("\n", " ")}],
            }
            for p in paragraphs
        ],
    }


class JiraClient:
    """Minimal Jira Cloud client (basic auth with an API token)."""

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.api_token = api_token
        self._transport = transport

    @classmethod
    def from_config(
        cls, config: dict[str, Any], transport: httpx.BaseTransport | None = None
    ) -> "JiraClient":
        """Build from an integration config, falling back to the environment.

        Raises:
            JiraError: If base URL, email or API token is missing
        """
        base_url = config.get("baseUrl") or os.getenv("JIRA_BASE_URL")
        email = config.get("email") or os.getenv("JIRA_EMAIL")
        api_token = config.get("apiToken") or os.getenv("JIRA_API_TOKEN")
        if not (base_url and email and api_token):
            raise JiraError("Invalid Jira integration config: missing baseUrl, email, or apiToken")
        return cls(base_url, email, api_token, transport=transport)

    def browse_url(self, key: str) -> str:
        return f"{self.base_url}/browse/{key}"

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=f"{self.base_url}/rest/api/3",
            timeout=HTTP_TIMEOUT_SECONDS,
            transport=self._transport,
            auth=(self.email, self.api_token),
            headers={"Accept": "application/json"},
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            with self._client() as client:
                response = client.request(method, path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                raise JiraError("Invalid Jira credentials") from e
            raise JiraError(f"Jira API error {status} on {method} {path}: {e.response.text}") from e
        except httpx.TimeoutException as e:
            raise JiraError("Jira API timeout") from e
        except httpx.HTTPError as e:
            raise JiraError(f"Jira request failed: {e}") from e

        if response.status_code == 204:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise JiraError(f"Jira returned a non-JSON reply on {method} {path}") from e

    def create_issue(
        self,
        project_key: str,
        issue_type: str,
        summary: str,
        description: str | None = None,
        extra_fields: dict[str, Any] | None = None,
    ) -> JiraIssue:
        """
        Create an issue.

        Args:
            project_key: Jira project key (e.g. "PROJ")
            issue_type: Issue type name ("Epic", "Story", ...)
            summary: Issue summary line
            description: Plain-text description, converted to ADF
            extra_fields: Additional fields, e.g. ``{"parent": {"key": "PROJ-1"}}``

        Returns:
            The created issue

        Raises:
            JiraError: If the API call fails
        """
        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "issuetype": {"name": issue_type},
            "summary": summary,
            **(extra_fields or {}),
        }
        if description:
            fields["description"] = text_to_adf(description)

        created = self._request("POST", "/issue", json={"fields": fields})
        try:
            issue_id, key = created["id"], created["key"]
        except (KeyError, TypeError) as e:
            raise JiraError(f"Malformed Jira create-issue reply: {created!r}") from e
        issue = JiraIssue(id=str(issue_id), key=key, url=self.browse_url(key))
        logger.info(f"Created Jira {issue_type} {issue.key} in {project_key}")
        return issue

    def get_issue(self, key: str) -> dict[str, Any]:
        return self._request("GET", f"/issue/{quote(key, safe='')}")

    def list_projects(self) -> list[dict[str, Any]]:
        """Projects visible to the credentials; used to test a connection."""
        return self._request("GET", "/project")


__all__ = ["JiraClient", "JiraError", "JiraIssue", "text_to_adf"]
