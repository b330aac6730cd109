"""Domain models shared by the stores, services and HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class NotificationStatus(str, Enum):
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the noticeboard database."""

    id: int
    email: str
    role: Role
    created_at: datetime
    name: Optional[str] = None
    mobile: Optional[str] = None
    bio: Optional[str] = None
    available_from: Optional[str] = None
    available_to: Optional[str] = None
    inbox: Tuple[int, ...] = ()

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class Sender:
    id: int
    email: str


@dataclass(frozen=True)
class Notification:
    """A message addressed to a set of users."""

    id: int
    message: str
    sender: Sender
    recipients: Tuple[int, ...]
    status: NotificationStatus
    is_critical: bool
    created_at: datetime
    delivered_at: Optional[datetime] = None


@dataclass
class DeliveryReport:
    """Outcome of fanning a notification out to recipient inboxes."""

    notification: Notification
    delivered: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


__all__ = [
    "DeliveryReport",
    "Notification",
    "NotificationStatus",
    "Role",
    "Sender",
    "User",
]
