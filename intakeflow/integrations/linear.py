"""Linear GraphQL client.

An epic becomes a Linear project and each story an issue in that project.
Credentials come from the organization's LINEAR integration (``apiKey``,
optional ``defaultTeamId``) or LINEAR_API_KEY.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import HTTP_TIMEOUT_SECONDS
from ..errors import ExternalFailure

logger = logging.getLogger(__name__)

LINEAR_API_URL = "https://api.linear.app/graphql"

PROJECT_CREATE = """
mutation($input: ProjectCreateInput!) {
  projectCreate(input: $input) {
    project { id name url }
  }
}
"""

ISSUE_CREATE = """
mutation($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    issue { id identifier title url }
  }
}
"""

TEAMS_QUERY = "query { teams { nodes { id name key } } }"


class LinearError(ExternalFailure):
    """Error during a Linear API call."""

    def __init__(self, message: str):
        super().__init__("linear", message)


@dataclass
class LinearRecord:
    """A created Linear project or issue."""

    id: str
    key: str  # issue identifier (e.g. ENG-12) or project id
    url: str


def _created(data: dict[str, Any], mutation: str, entity: str, fields: tuple[str, ...]) -> dict:
    """Pull the created entity out of a mutation payload.

    Raises:
        LinearError: If the entity or any of ``fields`` is missing
    """
    payload = data.get(mutation) if isinstance(data, dict) else None
    record = payload.get(entity) if isinstance(payload, dict) else None
    if not isinstance(record, dict) or any(not record.get(f) for f in fields):
        raise LinearError(f"Malformed Linear {mutation} reply: {data!r}")
    return record


class LinearClient:
    """Minimal Linear client."""

    def __init__(
        self,
        api_key: str,
        api_url: str = LINEAR_API_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self._transport = transport

    @classmethod
    def from_config(
        cls, config: dict[str, Any], transport: httpx.BaseTransport | None = None
    ) -> "LinearClient":
        """Build from an integration config, falling back to LINEAR_API_KEY.

        Raises:
            LinearError: If no API key is available
        """
        api_key = config.get("apiKey") or os.getenv("LINEAR_API_KEY")
        if not api_key:
            raise LinearError("Invalid Linear integration config: missing apiKey")
        return cls(api_key, transport=transport)

    def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Run a GraphQL operation and return its ``data``.

        Raises:
            LinearError: On HTTP errors, GraphQL errors or an empty response
        """
        try:
            with httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, transport=self._transport) as client:
                response = client.post(
                    self.api_url,
                    json={"query": query, "variables": variables or {}},
                    headers={"Authorization": self.api_key, "Content-Type": "application/json"},
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise LinearError(f"Linear API error {status}: {e.response.text}") from e
        except httpx.TimeoutException as e:
            raise LinearError("Linear API timeout") from e
        except httpx.HTTPError as e:
            raise LinearError(f"Linear request failed: {e}") from e
        except ValueError as e:
            raise LinearError("Linear returned a non-JSON reply") from e

        if not isinstance(body, dict):
            raise LinearError(f"Unexpected Linear reply: {body!r}")
        if body.get("errors"):
            messages = ", ".join(err.get("message", "unknown") for err in body["errors"])
            raise LinearError(f"Linear GraphQL errors: {messages}")
        if not body.get("data"):
            raise LinearError("Linear API returned no data")
        return body["data"]

    def create_project(
        self, team_id: str, name: str, description: str | None = None
    ) -> LinearRecord:
        data = self.graphql(
            PROJECT_CREATE,
            {"input": {"name": name, "description": description, "teamIds": [team_id]}},
        )
        project = _created(data, "projectCreate", "project", ("id", "url"))
        logger.info(f"Created Linear project {project['id']} ({name})")
        return LinearRecord(id=project["id"], key=project["id"], url=project["url"])

    def create_issue(
        self,
        team_id: str,
        title: str,
        description: str | None = None,
        project_id: str | None = None,
        priority: int = 3,
    ) -> LinearRecord:
        """Create an issue, optionally inside a project (priority 1 urgent .. 4 low)."""
        issue_input: dict[str, Any] = {"teamId": team_id, "title": title, "priority": priority}
        if description:
            issue_input["description"] = description
        if project_id:
            issue_input["projectId"] = project_id

        data = self.graphql(ISSUE_CREATE, {"input": issue_input})
        issue = _created(data, "issueCreate", "issue", ("id", "identifier", "url"))
        logger.info(f"Created Linear issue {issue['identifier']}")
        return LinearRecord(id=issue["id"], key=issue["identifier"], url=issue["url"])

    def list_teams(self) -> list[dict[str, Any]]:
        return self.graphql(TEAMS_QUERY)["teams"]["nodes"]


__all__ = ["LinearClient", "LinearError", "LinearRecord"]
