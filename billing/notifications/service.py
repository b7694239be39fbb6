"""Database notifications delivered to a per-user inbox."""

import logging
from typing import Literal

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.db.models import Notification, User, users_with_role

logger = logging.getLogger(__name__)

Severity = Literal["info", "success", "warning", "danger"]


class NotificationAction(BaseModel):
    """Clickable action attached to a notification.

    Attributes:
        name: Action identifier, e.g. "view"
        label: Button label (defaults to the capitalised name)
        url: Target URL
        color: Button colour
        mark_as_read: Whether following the action marks the notification read
    """

    name: str
    label: str | None = None
    url: str | None = None
    color: str = "primary"
    mark_as_read: bool = False

    def model_post_init(self, __context: object) -> None:
        if self.label is None:
            self.label = self.name.capitalize()


class NotificationMessage(BaseModel):
    """Notification content, independent of its recipient."""

    title: str
    body: str | None = None
    icon: str | None = None
    status: Severity = "info"
    actions: list[NotificationAction] = Field(default_factory=list)


class NotificationService:
    """Persists notifications to user inboxes."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def send_to_database(self, recipient: User, message: NotificationMessage) -> Notification:
        """Add ``message`` to ``recipient``'s inbox.

        Args:
            recipient: User receiving the notification
            message: Notification content

        Returns:
            The pending Notification row (committed with the caller's session)
        """
        notification = Notification(
            user=recipient,
            title=message.title,
            body=message.body,
            icon=message.icon,
            status=message.status,
            actions=[action.model_dump() for action in message.actions],
        )
        self.session.add(notification)
        logger.debug(f"Queued notification '{message.title}' for user {recipient.id}")
        return notification

    def send_to_role(self, role: str, message: NotificationMessage) -> list[Notification]:
        """Send one copy of ``message`` to every user holding ``role``."""
        recipients = users_with_role(self.session, role)
        notifications = [self.send_to_database(user, message) for user in recipients]
        self.session.flush()
        logger.info(f"Sent '{message.title}' to {len(notifications)} {role} user(s)")
        return notifications

    def inbox(self, user_id: int, unread_only: bool = False) -> list[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        return list(self.session.scalars(stmt.order_by(Notification.id.desc())))

    def mark_as_read(self, notification_id: int) -> Notification | None:
        notification = self.session.get(Notification, notification_id)
        if notification is not None:
            notification.mark_as_read()
        return notification
