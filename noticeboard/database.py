"""SQLite-backed persistence for users, notifications and inboxes."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from passlib.context import CryptContext

from .errors import DuplicateUserError, UserNotFoundError
from .models import Notification, NotificationStatus, Role, Sender, User


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "noticeboard.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _parse_optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return _parse_datetime(str(value))


def _normalize_email(email: str) -> str:
    return email.strip().lower()


_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (TypeError, ValueError):
        return False


_PROFILE_COLUMNS = {
    "name": "name",
    "mobile": "mobile",
    "bio": "bio",
    "available_from": "available_from",
    "available_to": "available_to",
}


class Database:
    """Simple wrapper around SQLite for persisting users and notifications."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    name TEXT,
                    mobile TEXT,
                    bio TEXT,
                    available_from TEXT,
                    available_to TEXT,
                    role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin')),
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message TEXT NOT NULL,
                    sender_id INTEGER NOT NULL REFERENCES users(id),
                    status TEXT NOT NULL DEFAULT 'queued'
                        CHECK (status IN ('queued', 'sent', 'delivered')),
                    is_critical INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    delivered_at TEXT
                );

                CREATE TABLE IF NOT EXISTS notification_recipients (
                    notification_id INTEGER NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    PRIMARY KEY (notification_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS inbox_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    notification_id INTEGER NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
                    delivered_at TEXT,
                    UNIQUE (user_id, notification_id)
                );

                CREATE INDEX IF NOT EXISTS idx_recipients_user_id ON notification_recipients(user_id);
                CREATE INDEX IF NOT EXISTS idx_inbox_user_id ON inbox_entries(user_id);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, email: str, password: str, *, role: Role | str = Role.USER) -> User:
        """Create a new user, storing only the hash of ``password``."""

        normalized_email = _normalize_email(email) if email else ""
        if not normalized_email:
            raise ValueError("Email must not be empty")
        if not password:
            raise ValueError("Password must not be empty")

        role_value = Role(role)
        created_at = _current_timestamp()
        password_hash = _hash_password(password)

        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (email, password_hash, role, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (normalized_email, password_hash, role_value.value, _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateUserError() from exc
            user_id = cursor.lastrowid

        return User(id=user_id, email=normalized_email, role=role_value, created_at=created_at)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_user(row, self._inbox_ids(conn, int(row["id"])))

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
            if row is None:
                return None
            return self._row_to_user(row, self._inbox_ids(conn, int(row["id"])))

    def resolve_user_ids(self, emails: Iterable[str]) -> Dict[str, int]:
        """Map each known email (normalized) to its user id; unknown emails are omitted."""

        normalized = sorted({_normalize_email(email) for email in emails if email and email.strip()})
        if not normalized:
            return {}

        placeholders = ", ".join("?" for _ in normalized)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id, email FROM users WHERE email IN ({placeholders})",
                normalized,
            ).fetchall()
        return {str(row["email"]): int(row["id"]) for row in rows}

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
            if row is None:
                return None
            if not _verify_password(password, str(row["password_hash"])):
                return None
            return self._row_to_user(row, self._inbox_ids(conn, int(row["id"])))

    def update_user_profile(self, user_id: int, **fields: object) -> User:
        """Update display fields for an existing user.

        Only ``name``, ``mobile``, ``bio``, ``available_from`` and
        ``available_to`` are applied. Anything else, including ``email``,
        ``password`` and ``role``, is ignored.
        """

        updates: List[str] = []
        values: List[object] = []
        for key, column in _PROFILE_COLUMNS.items():
            if key not in fields:
                continue
            value = fields[key]
            updates.append(f"{column} = ?")
            values.append(None if value is None else str(value))

        with self._connect() as conn:
            if updates:
                values.append(user_id)
                cursor = conn.execute(
                    f"UPDATE users SET {', '.join(updates)} WHERE id = ?",
                    values,
                )
                found = cursor.rowcount > 0
            else:
                found = conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is not None

        if not found:
            raise UserNotFoundError()

        refreshed = self.get_user(user_id)
        if refreshed is None:
            raise UserNotFoundError()
        return refreshed

    def set_user_role(self, user_id: int, role: Role | str) -> User:
        role_value = Role(role)
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET role = ? WHERE id = ?",
                (role_value.value, user_id),
            )
            if cursor.rowcount == 0:
                raise UserNotFoundError()

        refreshed = self.get_user(user_id)
        if refreshed is None:
            raise UserNotFoundError()
        return refreshed

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
            return [self._row_to_user(row, self._inbox_ids(conn, int(row["id"]))) for row in rows]

    def get_inbox(self, user_id: int) -> List[int]:
        with self._connect() as conn:
            return list(self._inbox_ids(conn, user_id))

    # ------------------------------------------------------------------
    # Notification management
    # ------------------------------------------------------------------
    def create_notification(
        self,
        sender_id: int,
        message: str,
        recipient_ids: Sequence[int],
        *,
        is_critical: bool = False,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        """Persist a queued notification together with its recipient set."""

        if not message:
            raise ValueError("Message must not be empty")

        timestamp = created_at or _current_timestamp()
        unique_recipients = list(dict.fromkeys(int(user_id) for user_id in recipient_ids))

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO notifications (message, sender_id, status, is_critical, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    message,
                    sender_id,
                    NotificationStatus.QUEUED.value,
                    int(bool(is_critical)),
                    _serialize_datetime(timestamp),
                ),
            )
            notification_id = cursor.lastrowid
            conn.executemany(
                """
                INSERT INTO notification_recipients (notification_id, user_id, position)
                VALUES (?, ?, ?)
                """,
                [(notification_id, user_id, position) for position, user_id in enumerate(unique_recipients)],
            )

        notification = self.get_notification(notification_id)
        if notification is None:
            raise RuntimeError("Failed to load notification after creation")
        return notification

    def append_to_inbox(self, user_id: int, notification_id: int) -> None:
        """Add ``notification_id`` to the inbox of ``user_id``.

        Raises :class:`UserNotFoundError` when the user is not (or no longer)
        a recipient of the notification.
        """

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO inbox_entries (user_id, notification_id)
                SELECT user_id, notification_id
                  FROM notification_recipients
                 WHERE notification_id = ? AND user_id = ?
                """,
                (notification_id, user_id),
            )
            if cursor.rowcount == 0:
                raise UserNotFoundError(
                    f"User {user_id} is not a recipient of notification {notification_id}"
                )

    def set_notification_status(self, notification_id: int, status: NotificationStatus) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE notifications SET status = ? WHERE id = ?",
                (NotificationStatus(status).value, notification_id),
            )

    def get_notification(self, notification_id: int) -> Optional[Notification]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT n.*, u.email AS sender_email
                  FROM notifications n
                  JOIN users u ON u.id = n.sender_id
                 WHERE n.id = ?
                """,
                (notification_id,),
            ).fetchall()
            notifications = self._rows_to_notifications(conn, rows)
        return notifications[0] if notifications else None

    def list_notifications_for_user(self, user_id: int) -> List[Notification]:
        """Return notifications addressed to ``user_id``, critical ones first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT n.*, u.email AS sender_email
                  FROM notifications n
                  JOIN notification_recipients r ON r.notification_id = n.id
                  JOIN users u ON u.id = n.sender_id
                 WHERE r.user_id = ?
                 ORDER BY n.is_critical DESC, n.id ASC
                """,
                (user_id,),
            ).fetchall()
            return self._rows_to_notifications(conn, rows)

    def mark_inbox_delivered(self, user_id: int, *, delivered_at: Optional[datetime] = None) -> List[int]:
        """Stamp every undelivered inbox entry of ``user_id``.

        A notification moves to ``delivered`` once all of its recipients hold a
        delivered inbox entry. Returns the ids of notifications whose entry
        was stamped by this call.
        """

        timestamp = _serialize_datetime(delivered_at or _current_timestamp())
        with self._connect() as conn:
            pending = [
                int(row["notification_id"])
                for row in conn.execute(
                    "SELECT notification_id FROM inbox_entries WHERE user_id = ? AND delivered_at IS NULL",
                    (user_id,),
                ).fetchall()
            ]
            if not pending:
                return []

            conn.execute(
                "UPDATE inbox_entries SET delivered_at = ? WHERE user_id = ? AND delivered_at IS NULL",
                (timestamp, user_id),
            )
            placeholders = ", ".join("?" for _ in pending)
            conn.execute(
                f"""
                UPDATE notifications
                   SET status = ?, delivered_at = ?
                 WHERE id IN ({placeholders})
                   AND status = ?
                   AND NOT EXISTS (
                       SELECT 1
                         FROM notification_recipients r
                         LEFT JOIN inbox_entries i
                           ON i.notification_id = r.notification_id AND i.user_id = r.user_id
                        WHERE r.notification_id = notifications.id
                          AND i.delivered_at IS NULL
                   )
                """,
                [
                    NotificationStatus.DELIVERED.value,
                    timestamp,
                    *pending,
                    NotificationStatus.SENT.value,
                ],
            )
        return pending

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _inbox_ids(self, conn: sqlite3.Connection, user_id: int) -> tuple[int, ...]:
        rows = conn.execute(
            "SELECT notification_id FROM inbox_entries WHERE user_id = ? ORDER BY id",
            (user_id,),
        ).fetchall()
        return tuple(int(row["notification_id"]) for row in rows)

    def _row_to_user(self, row: sqlite3.Row, inbox: tuple[int, ...] = ()) -> User:
        return User(
            id=int(row["id"]),
            email=str(row["email"]),
            role=Role(str(row["role"])),
            created_at=_parse_datetime(str(row["created_at"])),
            name=row["name"],
            mobile=row["mobile"],
            bio=row["bio"],
            available_from=row["available_from"],
            available_to=row["available_to"],
            inbox=inbox,
        )

    def _rows_to_notifications(self, conn: sqlite3.Connection, rows: List[sqlite3.Row]) -> List[Notification]:
        if not rows:
            return []

        ids = [int(row["id"]) for row in rows]
        placeholders = ", ".join("?" for _ in ids)
        recipients: Dict[int, List[int]] = {notification_id: [] for notification_id in ids}
        for recipient in conn.execute(
            f"""
            SELECT notification_id, user_id
              FROM notification_recipients
             WHERE notification_id IN ({placeholders})
             ORDER BY notification_id, position
            """,
            ids,
        ).fetchall():
            recipients[int(recipient["notification_id"])].append(int(recipient["user_id"]))

        return [
            Notification(
                id=int(row["id"]),
                message=str(row["message"]),
                sender=Sender(id=int(row["sender_id"]), email=str(row["sender_email"])),
                recipients=tuple(recipients[int(row["id"])]),
                status=NotificationStatus(str(row["status"])),
                is_critical=bool(row["is_critical"]),
                created_at=_parse_datetime(str(row["created_at"])),
                delivered_at=_parse_optional_datetime(row["delivered_at"]),
            )
            for row in rows
        ]


__all__ = ["Database", "resolve_database_path"]
