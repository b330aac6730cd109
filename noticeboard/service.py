"""HTTP API for accounts, profiles and notifications."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import Settings, load_settings
from .database import Database
from .errors import InvalidCredentialsError, NoticeboardError
from .models import DeliveryReport, Notification, NotificationStatus, Role, User
from .notifications import NotificationService
from .security import BearerAuth, build_admin_dependency
from .tokens import TokenService

logger = logging.getLogger("noticeboard.service")


class _APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CredentialsRequest(_APIModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        stripped = value.strip().lower()
        if not stripped:
            raise ValueError("email must not be empty")
        return stripped


class LoginRequest(_APIModel):
    email: str
    password: str


class UserSummary(_APIModel):
    email: str
    role: Role


class AuthResponse(_APIModel):
    token: str
    user: UserSummary


class UserResponse(_APIModel):
    id: int
    email: str
    name: Optional[str] = None
    mobile: Optional[str] = None
    bio: Optional[str] = None
    available_from: Optional[str] = None
    available_to: Optional[str] = None
    role: Role
    notifications: List[int] = Field(default_factory=list)
    created_at: datetime


class VerifyResponse(_APIModel):
    valid: bool = True
    user: UserResponse


class ProfileUpdateRequest(_APIModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    mobile: Optional[str] = None
    bio: Optional[str] = None
    available_from: Optional[str] = None
    available_to: Optional[str] = None

    @field_validator("mobile", mode="before")
    @classmethod
    def _stringify_mobile(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class SendNotificationRequest(_APIModel):
    message: str = Field(..., min_length=1)
    recipients: List[str] = Field(default_factory=list)
    is_critical: bool = False

    @field_validator("recipients", mode="before")
    @classmethod
    def _coerce_recipients(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class SenderResponse(_APIModel):
    id: int
    email: str


class NotificationResponse(_APIModel):
    id: int
    message: str
    sender: SenderResponse
    recipients: List[int]
    status: NotificationStatus
    is_critical: bool
    created_at: datetime
    delivered_at: Optional[datetime] = None


class DeliveryResponse(_APIModel):
    delivered: List[int]
    failed: List[int]
    unresolved: List[str]


class SentNotificationResponse(NotificationResponse):
    delivery: DeliveryResponse


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        mobile=user.mobile,
        bio=user.bio,
        available_from=user.available_from,
        available_to=user.available_to,
        role=user.role,
        notifications=list(user.inbox),
        created_at=user.created_at,
    )


def notification_to_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        message=notification.message,
        sender=SenderResponse(id=notification.sender.id, email=notification.sender.email),
        recipients=list(notification.recipients),
        status=notification.status,
        is_critical=notification.is_critical,
        created_at=notification.created_at,
        delivered_at=notification.delivered_at,
    )


def report_to_response(report: DeliveryReport) -> SentNotificationResponse:
    base = notification_to_response(report.notification)
    return SentNotificationResponse(
        **base.model_dump(),
        delivery=DeliveryResponse(
            delivered=list(report.delivered),
            failed=list(report.failed),
            unresolved=list(report.unresolved),
        ),
    )


def _trusted_proxy_hosts(settings: Settings) -> list[str] | str:
    return list(settings.trusted_proxies) or "*"


def register_api_routes(
    router: APIRouter,
    database: Database,
    tokens: TokenService,
    notifications: NotificationService,
    *,
    current_user: Callable[..., User],
    admin_user: Callable[..., User],
) -> None:
    """Attach the JSON API endpoints to ``router``."""

    def _auth_response(user: User) -> AuthResponse:
        return AuthResponse(
            token=tokens.issue(user.id),
            user=UserSummary(email=user.email, role=user.role),
        )

    @router.post("/signup", response_model=AuthResponse)
    async def signup(request: CredentialsRequest) -> AuthResponse:
        user = database.create_user(request.email, request.password)
        logger.info("Created user %s <%s>", user.id, user.email)
        return _auth_response(user)

    @router.post("/login", response_model=AuthResponse)
    async def login(request: LoginRequest) -> AuthResponse:
        user = database.authenticate_user(request.email, request.password)
        if user is None:
            logger.warning("Failed login attempt for %s", request.email)
            raise InvalidCredentialsError()
        logger.info("User %s logged in", user.id)
        return _auth_response(user)

    @router.get("/verify", response_model=VerifyResponse)
    async def verify(user: User = Depends(current_user)) -> VerifyResponse:
        return VerifyResponse(valid=True, user=user_to_response(user))

    @router.get("/profile", response_model=UserResponse)
    async def read_profile(user: User = Depends(current_user)) -> UserResponse:
        return user_to_response(user)

    @router.put("/profile", response_model=UserResponse)
    async def update_profile(
        request: ProfileUpdateRequest,
        user: User = Depends(current_user),
    ) -> UserResponse:
        updated = database.update_user_profile(user.id, **request.model_dump(exclude_unset=True))
        logger.info("User %s updated their profile", user.id)
        return user_to_response(updated)

    @router.post("/notifications", response_model=SentNotificationResponse)
    async def send_notification(
        request: SendNotificationRequest,
        user: User = Depends(current_user),
    ) -> SentNotificationResponse:
        report = notifications.send(user.id, request.message, request.recipients, request.is_critical)
        return report_to_response(report)

    @router.get("/notifications", response_model=List[NotificationResponse])
    async def list_notifications(user: User = Depends(current_user)) -> List[NotificationResponse]:
        return [notification_to_response(item) for item in notifications.list_for_user(user.id)]

    @router.post("/admin/notifications", response_model=SentNotificationResponse)
    async def broadcast_notification(
        request: SendNotificationRequest,
        user: User = Depends(admin_user),
    ) -> SentNotificationResponse:
        report = notifications.send(user.id, request.message, request.recipients, request.is_critical)
        logger.info("Admin %s broadcast notification %s", user.id, report.notification.id)
        return report_to_response(report)


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    tokens: TokenService | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""

    app_settings = settings or load_settings()
    db = database or Database(app_settings.database_path)
    db.initialize()

    token_service = tokens or TokenService(app_settings.jwt_secret, ttl=app_settings.token_ttl)
    notification_service = NotificationService(db)

    app = FastAPI(
        title="Noticeboard API",
        version="0.1.0",
        description="User accounts, profiles and notification fan-out.",
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts(app_settings))

    app.state.settings = app_settings
    app.state.database = db
    app.state.tokens = token_service
    app.state.notifications = notification_service

    current_user = BearerAuth(db, token_service)
    router = APIRouter()
    register_api_routes(
        router,
        db,
        token_service,
        notification_service,
        current_user=current_user,
        admin_user=build_admin_dependency(current_user),
    )
    app.include_router(router, prefix=app_settings.api_prefix)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.exception_handler(NoticeboardError)
    async def handle_noticeboard_error(_: Request, exc: NoticeboardError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(sqlite3.DatabaseError)
    async def handle_database_error(request: Request, exc: sqlite3.DatabaseError):
        logger.error("Database error while handling %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Server error"},
        )

    return app


__all__ = ["create_app", "register_api_routes"]
