import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, NoReturn
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from emgurus.adapters.email import DevEmailAdapter, ResendEmailAdapter
from emgurus.api.auth_utils import decode_access_token
from emgurus.app_shell.context import ServiceContext
from emgurus.domain.entities import User
from emgurus.domain.errors import http_status_for
from emgurus.ports.email import EmailPort
from emgurus.rules.loader import load_rules
from emgurus.rules.models import Rules

logger = logging.getLogger(__name__)


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("EMG_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "emgurus.db")
        self.rules_path = Path(os.environ.get("EMG_RULES_PATH", str(self.base_dir / "rules.yaml")))
        self.migrations_dir = self.base_dir / "migrations"
        self.jwt_secret = os.environ.get("EMG_JWT_SECRET", "dev-secret-unsafe")
        self.resend_api_key = os.environ.get("RESEND_API_KEY") or None
        self.email_from = os.environ.get("EMG_EMAIL_FROM") or None
        self.origin_allowlist = os.environ.get("ORIGIN_ALLOWLIST") or None


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    settings = get_settings()
    rules = load_rules(settings.rules_path)
    if settings.email_from:
        notifications = rules.notifications.model_copy(update={"sender": settings.email_from})
        rules = rules.model_copy(update={"notifications": notifications})
    return rules


def build_email(settings: Settings, rules: Rules) -> EmailPort:
    """Resend when an API key is configured, otherwise log-only dev delivery."""
    if settings.resend_api_key:
        return ResendEmailAdapter(
            api_key=settings.resend_api_key,
            default_sender=rules.notifications.sender,
            timeout_seconds=rules.notifications.email_timeout_seconds,
        )
    logger.warning("RESEND_API_KEY not set; e-mail is logged, not sent")
    return DevEmailAdapter()


# --- Context ---
@lru_cache
def get_context() -> ServiceContext:
    settings = get_settings()
    rules = get_rules()
    return ServiceContext.create(settings.db_path, rules, email=build_email(settings, rules))


# --- Errors ---
def raise_for(errors: list) -> NoReturn:
    """Raise the first component error as an HTTPException."""
    err = errors[0]
    raise HTTPException(
        status_code=http_status_for(err.code),
        detail={"error": err.code, "message": err.message, "field": err.field},
    )


def require_kind(ctx: ServiceContext, item_id: UUID, kind: str) -> None:
    """404 unless the item exists and is of ``kind``; each router serves one kind."""
    item = ctx.store.get_item(item_id)
    if item is None or item.kind != kind:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": "Item not found", "field": "item_id"},
        )


# --- Auth ---
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "unauthenticated", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: Settings = Depends(get_settings),
    ctx: ServiceContext = Depends(get_context),
) -> User | None:
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials, settings.jwt_secret)
    if not payload:
        raise _unauthorized("Invalid token")

    sub = payload.get("sub")
    if sub is None or not isinstance(sub, str):
        raise _unauthorized("Invalid token payload")
    try:
        user_id = UUID(sub)
    except ValueError:
        raise _unauthorized("Invalid token payload") from None

    # Roles come from the role store on every request, never from the token.
    user = ctx.users.get_by_id(user_id)
    if not user:
        raise _unauthorized("User not found")

    if user.status != "active":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "not_authorized", "message": "Inactive user"},
        )

    return user


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise _unauthorized("Not authenticated")
    return user
