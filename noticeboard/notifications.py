"""Notification fan-out: resolve recipients, persist, and fill inboxes."""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, List

from .database import Database
from .errors import UserNotFoundError
from .models import DeliveryReport, Notification, NotificationStatus

logger = logging.getLogger("noticeboard.notifications")


class NotificationService:
    """Send notifications and list a user's received notifications."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def send(
        self,
        sender_id: int,
        message: str,
        recipient_emails: Iterable[str],
        is_critical: bool = False,
    ) -> DeliveryReport:
        """Create a notification and append it to each resolved recipient's inbox.

        Unknown emails are dropped from the recipient set and listed in
        :attr:`DeliveryReport.unresolved`. Inbox writes are independent of
        each other and of the notification insert; a recipient whose write
        fails ends up in :attr:`DeliveryReport.failed` instead of aborting the
        send.
        """

        requested: List[str] = []
        for email in recipient_emails:
            normalized = email.strip().lower() if email else ""
            if normalized and normalized not in requested:
                requested.append(normalized)

        resolved = self._database.resolve_user_ids(requested)
        unresolved = [email for email in requested if email not in resolved]
        recipient_ids = list(dict.fromkeys(resolved[email] for email in requested if email in resolved))

        if unresolved:
            logger.info(
                "Dropping %d unknown recipient(s) from notification by user %s",
                len(unresolved),
                sender_id,
            )

        notification = self._database.create_notification(
            sender_id,
            message,
            recipient_ids,
            is_critical=is_critical,
        )

        delivered: List[int] = []
        failed: List[int] = []
        for user_id in recipient_ids:
            try:
                self._database.append_to_inbox(user_id, notification.id)
            except (sqlite3.DatabaseError, UserNotFoundError) as exc:
                logger.warning(
                    "Failed to add notification %s to inbox of user %s: %s",
                    notification.id,
                    user_id,
                    exc,
                )
                failed.append(user_id)
            else:
                delivered.append(user_id)

        self._database.set_notification_status(notification.id, NotificationStatus.SENT)
        refreshed = self._database.get_notification(notification.id) or notification

        logger.info(
            "User %s sent notification %s (critical=%s) to %d recipient(s), %d failed",
            sender_id,
            notification.id,
            bool(is_critical),
            len(delivered),
            len(failed),
        )

        return DeliveryReport(
            notification=refreshed,
            delivered=delivered,
            failed=failed,
            unresolved=unresolved,
        )

    def list_for_user(self, user_id: int) -> List[Notification]:
        """Return notifications addressed to ``user_id``.

        Critical notifications come first, otherwise storage order is kept.
        Listing counts as reading: the caller's inbox entries are stamped as
        delivered before the records are returned.
        """

        stamped = self._database.mark_inbox_delivered(user_id)
        if stamped:
            logger.debug("Marked %d notification(s) delivered for user %s", len(stamped), user_id)
        return self._database.list_notifications_for_user(user_id)


__all__ = ["NotificationService"]
