"""Slack Web API client and notification sink.

Credentials come from the organization's SLACK integration (``botToken``,
``channel``) or SLACK_BOT_TOKEN / SLACK_CHANNEL.
"""

import logging
import os
from typing import Any

import httpx

from ..config import HTTP_TIMEOUT_SECONDS, NotificationType
from ..errors import ExternalFailure
from ..models import Notification
from ..notifications import NotificationSink

logger = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api"


class SlackError(ExternalFailure):
    """Error during a Slack API call."""

    def __init__(self, message: str):
        super().__init__("slack", message)


class SlackClient:
    """Minimal Slack Web API client."""

    def __init__(
        self,
        bot_token: str,
        base_url: str = SLACK_API_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        self.bot_token = bot_token
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def api(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        """
        Call a Web API method.

        Slack answers HTTP 200 with ``"ok": false`` for most failures, so both
        the status code and the ``ok`` flag are checked.

        Raises:
            SlackError: If the call fails
        """
        try:
            with httpx.Client(
                base_url=self.base_url, timeout=HTTP_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = client.post(
                    f"/{method}",
                    json=body,
                    headers={"Authorization": f"Bearer {self.bot_token}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise SlackError(f"Slack API error {e.response.status_code} on {method}") from e
        except httpx.TimeoutException as e:
            raise SlackError(f"Slack API timeout on {method}") from e
        except httpx.HTTPError as e:
            raise SlackError(f"Slack request failed: {e}") from e

        if not data.get("ok"):
            raise SlackError(f"Slack API error on {method}: {data.get('error', 'unknown_error')}")
        return data

    def post_message(
        self, channel: str, text: str, blocks: list[dict[str, Any]] | None = None
    ) -> str:
        """Post a message and return its timestamp."""
        body: dict[str, Any] = {"channel": channel, "text": text}
        if blocks:
            body["blocks"] = blocks
        return self.api("chat.postMessage", body).get("ts", "")


def format_notification(notification: Notification) -> str:
    """Slack mrkdwn text for a notification."""
    text = f"*{notification.title}*\n{notification.message}"
    if notification.link:
        text += f"\n<{notification.link}|Open request>"
    return text


class SlackNotificationSink(NotificationSink):
    """Posts notifications to one Slack channel.

    Delivery failures raise ``SlackError``; the dispatcher logs and
    swallows them.
    """

    name = "slack"

    def __init__(
        self,
        client: SlackClient,
        channel: str,
        types: set[NotificationType] | None = None,
    ):
        self.client = client
        self.channel = channel
        self.types = types

    @classmethod
    def from_config(
        cls, config: dict[str, Any], transport: httpx.BaseTransport | None = None
    ) -> "SlackNotificationSink":
        """Build from a SLACK integration config, falling back to the environment.

        Raises:
            SlackError: If the bot token or channel is missing
        """
        token = config.get("botToken") or os.getenv("SLACK_BOT_TOKEN")
        channel = config.get("channel") or os.getenv("SLACK_CHANNEL")
        if not (token and channel):
            raise SlackError("Invalid Slack integration config: missing botToken or channel")
        return cls(SlackClient(token, transport=transport), channel)

    def send(self, notification: Notification) -> None:
        if self.types is not None and notification.type not in self.types:
            return
        self.client.post_message(self.channel, format_notification(notification))
        logger.debug(f"Posted {notification.type.value} to Slack {self.channel}")


__all__ = ["SlackClient", "SlackError", "SlackNotificationSink", "format_notification"]
