"""Notification dispatch for lifecycle events.

Notifications are fire-and-forget: a failing sink is logged and skipped, and
never affects the status write that triggered it. Every status change goes
through ``NotificationDispatcher.status_changed`` so decisions, manual
transitions and agent tools emit the same notifications.
"""

import logging
from abc import ABC, abstractmethod

from .config import NotificationType, RequestStatus
from .lifecycle.transitions import format_status
from .models import Actor, FeatureRequest, Notification
from .persistence.store import InMemoryStore

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Delivery channel for notifications (in-app, chat, email)."""

    name: str = "sink"

    @abstractmethod
    def send(self, notification: Notification) -> None:
        """Deliver one notification.

        Raises:
            ExternalFailure: If delivery fails
        """
        pass


class InMemoryNotificationSink(NotificationSink):
    """Collects notifications in a list, e.g. for an in-app inbox."""

    name = "in_app"

    def __init__(self):
        self.sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def for_user(self, user_id: str) -> list[Notification]:
        return [n for n in self.sent if n.user_id == user_id]

    def clear(self) -> None:
        self.sent.clear()


class NotificationDispatcher:
    """Builds lifecycle notifications and fans them out to every sink."""

    def __init__(self, store: InMemoryStore, sinks: list[NotificationSink] | None = None):
        self.store = store
        self.sinks = list(sinks or [])

    def add_sink(self, sink: NotificationSink) -> None:
        self.sinks.append(sink)

    def dispatch(self, notification: Notification) -> int:
        """Send to every sink, swallowing failures. Returns successful deliveries."""
        delivered = 0
        for sink in self.sinks:
            try:
                sink.send(notification)
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Notification sink {sink.name} failed for user {notification.user_id} "
                    f"({notification.type.value}): {e}"
                )
        return delivered

    def status_changed(
        self,
        request: FeatureRequest,
        previous: RequestStatus,
        actor: Actor | None,
        decision_type: str | None = None,
    ) -> None:
        """Notify the owner of a status change and fan out review requests.

        The owner is skipped when they made the change themselves. When the
        new status is UNDER_REVIEW every other organization member is asked
        to review.
        """
        actor_id = actor.user_id if actor else None
        link = f"/requests/{request.id}"

        if request.requester_id != actor_id:
            if decision_type:
                note_type = NotificationType.DECISION_MADE
                title = f"Decision on: {request.title}"
                message = (
                    f"A reviewer recorded {decision_type}; status is now "
                    f"{format_status(request.status)}."
                )
            else:
                note_type = NotificationType.STATUS_CHANGED
                title = f"Status updated: {request.title}"
                message = (
                    f"Status changed from {format_status(previous)} to "
                    f"{format_status(request.status)}."
                )
            self.dispatch(
                Notification(
                    organization_id=request.organization_id,
                    user_id=request.requester_id,
                    type=note_type,
                    title=title,
                    message=message,
                    link=link,
                )
            )

        if request.status == RequestStatus.UNDER_REVIEW:
            self._review_needed(request, actor_id, link)

    def assessment_complete(self, request: FeatureRequest) -> None:
        """Tell the owner their request has been scored."""
        self.dispatch(
            Notification(
                organization_id=request.organization_id,
                user_id=request.requester_id,
                type=NotificationType.ASSESSMENT_COMPLETE,
                title=f"Assessment complete: {request.title}",
                message=(
                    f"Priority score {request.priority_score:g}, complexity "
                    f"{request.complexity.value if request.complexity else 'UNKNOWN'}."
                ),
                link=f"/requests/{request.id}",
            )
        )

    def _review_needed(self, request: FeatureRequest, actor_id: str | None, link: str) -> None:
        try:
            members = self.store.list_members(request.organization_id)
        except Exception as e:
            logger.warning(f"Could not load members of {request.organization_id}: {e}")
            return

        for member in members:
            if member.user_id == actor_id:
                continue
            self.dispatch(
                Notification(
                    organization_id=request.organization_id,
                    user_id=member.user_id,
                    type=NotificationType.REVIEW_NEEDED,
                    title=f"Review needed: {request.title}",
                    message="A feature request is ready for review.",
                    link=link,
                )
            )
