"""
Wire types of the hosted backend: auth users, sessions, and the
``{data, error}`` result every client call returns.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class BackendError:
    """
    Error reported by the backend (or by the transport, with status 0).

    ``status`` is the HTTP status; 429 means rate-limited upstream and
    400/401 mean rejected credentials.
    """

    message: str
    status: int = 0
    code: str | None = None

    @property
    def is_transport_error(self) -> bool:
        return self.status == 0

    @classmethod
    def from_response_body(cls, status: int, body: Any) -> "BackendError":
        if isinstance(body, dict):
            message = (
                body.get("msg")
                or body.get("message")
                or body.get("error_description")
                or body.get("error")
                or f"HTTP {status}"
            )
            code = body.get("error_code") or body.get("code")
            return cls(message=str(message), status=status, code=str(code) if code else None)
        return cls(message=str(body) if body else f"HTTP {status}", status=status)


@dataclass(frozen=True)
class BackendResult(Generic[T]):
    """Result of a backend call: exactly one of ``data``/``error`` is meaningful."""

    data: T | None = None
    error: BackendError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class AuthUser:
    """Raw identity from the auth service (not the application profile)."""

    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = field(default_factory=dict)
    app_metadata: dict[str, Any] = field(default_factory=dict)
    email_confirmed_at: str | None = None
    created_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthUser":
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            user_metadata=dict(data.get("user_metadata") or {}),
            app_metadata=dict(data.get("app_metadata") or {}),
            email_confirmed_at=data.get("email_confirmed_at") or data.get("confirmed_at"),
            created_at=data.get("created_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "user_metadata": self.user_metadata,
            "app_metadata": self.app_metadata,
            "email_confirmed_at": self.email_confirmed_at,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class AuthSession:
    """Access/refresh token pair with its absolute expiry (epoch seconds)."""

    access_token: str
    refresh_token: str
    expires_at: float
    user: AuthUser
    token_type: str = "bearer"

    @classmethod
    def from_dict(cls, data: dict[str, Any], now: float | None = None) -> "AuthSession":
        expires_at = data.get("expires_at")
        if expires_at is None:
            issued = now if now is not None else time.time()
            expires_at = issued + float(data.get("expires_in") or 3600)
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_at=float(expires_at),
            user=AuthUser.from_dict(data["user"]),
            token_type=data.get("token_type") or "bearer",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "token_type": self.token_type,
            "user": self.user.to_dict(),
        }

    def seconds_until_expiry(self, now: float | None = None) -> float:
        return self.expires_at - (now if now is not None else time.time())

    def is_expired(self, now: float | None = None, leeway: float = 0.0) -> bool:
        return self.seconds_until_expiry(now) <= leeway


@dataclass(frozen=True)
class SignUpData:
    """Sign-up outcome. ``session`` is None when email verification is required."""

    user: AuthUser
    session: AuthSession | None = None

    @property
    def requires_verification(self) -> bool:
        return self.session is None
