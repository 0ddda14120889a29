"""Third-party integrations: GitHub, Jira, Linear and Slack."""

from .github import GitHubClient, GitHubError, get_github_token
from .jira import JiraClient, JiraError, text_to_adf
from .linear import LinearClient, LinearError
from .slack import SlackClient, SlackError, SlackNotificationSink
from .sync import EpicSyncService, SyncProvider, SyncResult

__all__ = [
    "EpicSyncService",
    "GitHubClient",
    "GitHubError",
    "JiraClient",
    "JiraError",
    "LinearClient",
    "LinearError",
    "SlackClient",
    "SlackError",
    "SlackNotificationSink",
    "SyncProvider",
    "SyncResult",
    "get_github_token",
    "text_to_adf",
]
