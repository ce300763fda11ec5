"""
fellowship.api.deps — FastAPI dependencies
============================================

Shared engine/config singletons, the push dispatcher handle, and the two
auth guards (user JWT and scheduler secret).  ``JWT_SECRET`` is checked when
this module is imported, so a misconfigured deployment fails at startup
instead of on the first request.
"""

from __future__ import annotations

import hmac
import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Header, HTTPException, Request, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from fellowship.config import FellowshipConfig, load_config
from fellowship.database.engine import create_db_engine
from fellowship.services.notification_service import NotificationDispatcher

JWT_ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32

# Placeholder values that ship in examples and tutorials
_KNOWN_WEAK_SECRETS = frozenset({
    "fellowship-dev-secret-change-me",
    "change-me",
    "changeme",
    "secret",
    "dev",
})


def _load_jwt_secret() -> str:
    """Return ``JWT_SECRET`` or raise RuntimeError describing what's wrong."""
    secret = os.getenv("JWT_SECRET", "").strip()
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set.  Add a random value of "
            f"at least {MIN_SECRET_LENGTH} characters to .env."
        )
    if secret.lower() in _KNOWN_WEAK_SECRETS:
        raise RuntimeError(f"JWT_SECRET is a known weak default ({secret!r}); replace it.")
    if len(secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short: {len(secret)} characters, "
            f"need at least {MIN_SECRET_LENGTH}."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> FellowshipConfig:
    """``$FELLOWSHIP_CONFIG`` (default ``config.yaml``), or built-in defaults."""
    path = os.getenv("FELLOWSHIP_CONFIG", "config.yaml")
    if not os.path.exists(path):
        return FellowshipConfig(app_name="Fellowship")
    return load_config(path)


def get_dispatcher(request: Request) -> NotificationDispatcher | None:
    """The push dispatcher started by the lifespan, if it is running."""
    return getattr(request.app.state, "dispatcher", None)


def _bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[len("Bearer "):]


def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """``sub`` of a valid user JWT; 401 otherwise."""
    token = _bearer(authorization)
    if token is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not claims.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    return str(claims["sub"])


def require_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Only the scheduler, holding ``CRON_SECRET``, may call cron routes."""
    secret = os.getenv("CRON_SECRET", "")
    token = _bearer(authorization)
    if not secret or token is None or not hmac.compare_digest(token.encode(), secret.encode()):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
