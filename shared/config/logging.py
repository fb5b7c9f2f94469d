"""
Centralized structured logging for the storefront.
Uses Python's standard logging with JSON formatting for production.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import Settings, get_settings


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs logs in a format easily parseable by log aggregation tools.
    """

    def __init__(self, include_source: bool = False):
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_data") and record.extra_data:
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime("%H:%M:%S")

        message = f"{color}[{timestamp}] {record.levelname:8}{self.RESET} {record.name}: {record.getMessage()}"

        if hasattr(record, "extra_data") and record.extra_data:
            data_str = " | ".join(f"{k}={v}" for k, v in record.extra_data.items())
            message += f" ({data_str})"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class StructuredLogger(logging.Logger):
    """
    Custom logger that supports structured data.

    Keyword arguments passed to the level methods are attached to the
    record as ``extra_data`` instead of being interpolated into the message.
    """

    def _log_with_data(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        extra: dict | None = None,
        **kwargs: Any,
    ) -> None:
        """Log with optional structured data."""
        if not self.isEnabledFor(level):
            return
        if extra is None:
            extra = {}
        extra["extra_data"] = kwargs if kwargs else None
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        exc_info = kwargs.pop("exc_info", None)
        self._log_with_data(logging.ERROR, msg, args, exc_info=exc_info, **kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        exc_info = kwargs.pop("exc_info", None)
        self._log_with_data(logging.CRITICAL, msg, args, exc_info=exc_info, **kwargs)


# Set custom logger class
logging.setLoggerClass(StructuredLogger)


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure logging for the application.
    Call this once at application startup; defaults to the environment settings.
    """
    settings = settings or get_settings()
    log_level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if settings.environment == "production":
        formatter = StructuredFormatter(include_source=settings.debug)
    else:
        formatter = DevelopmentFormatter()

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)

        logger.info("User signed in", user_id=user.id, email=mask_email(user.email))
        logger.error("Failed to place order", order_id=order_id, exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore


def mask_email(email: str | None) -> str:
    """
    Mask email address for logging to protect PII.

    Converts "user@example.com" to "us***@example.com".
    """
    if not email:
        return "<no-email>"

    try:
        local, domain = email.split("@", 1)
        if len(local) <= 2:
            masked_local = local[0] + "***" if local else "***"
        else:
            masked_local = local[:2] + "***"
        return f"{masked_local}@{domain}"
    except ValueError:
        return "***@invalid"


def mask_user_id(user_id: str | None) -> str:
    """Show only the first 8 characters of a user id (uuid prefix)."""
    if not user_id:
        return "<no-user>"
    if len(user_id) <= 8:
        return user_id
    return f"{user_id[:8]}..."


def mask_token(token: str | None) -> str | None:
    """Keep the last 8 characters of a bearer token, enough to tell tokens apart."""
    if not token:
        return None
    return "***" + token[-8:]


# Pre-configured loggers for common modules
storefront_logger = get_logger("storefront")
session_logger = get_logger("storefront.session")
identity_logger = get_logger("storefront.identity")
cart_logger = get_logger("storefront.cart")
checkout_logger = get_logger("storefront.checkout")

# Dedicated security audit logger
security_audit_logger = get_logger("security.audit")


# =============================================================================
# Security Audit Logging Functions
# =============================================================================


def audit_auth_event(
    event_type: str,
    user_id: str | None = None,
    email: str | None = None,
    success: bool = True,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Log authentication security events.

    Args:
        event_type: SIGN_IN, SIGN_UP, SIGN_OUT, ADMIN_SIGN_IN, TOKEN_REFRESH, GUEST, ...
        user_id: User ID (if known)
        email: Email address (masked automatically)
        success: Whether the operation succeeded
        reason: Reason for failure (if applicable)
        **extra: Additional context data
    """
    log_level = logging.INFO if success else logging.WARNING

    security_audit_logger._log_with_data(
        log_level,
        f"AUTH_AUDIT: {event_type}",
        args=(),
        event_type=event_type,
        user_id=mask_user_id(user_id) if user_id else None,
        email=mask_email(email) if email else None,
        success=success,
        reason=reason,
        **extra,
    )


def audit_rate_limit_event(
    context: str,
    identifier: str,
    limit: int,
    window: int,
    **extra: Any,
) -> None:
    """
    Log rate limiting events.

    Args:
        context: Limiter name (sign_in, sign_up)
        identifier: Throttled identifier, masked when it is an email
        limit: Rate limit that was exceeded
        window: Time window in seconds
    """
    security_audit_logger.warning(
        f"RATE_LIMIT_AUDIT: {context}",
        context=context,
        identifier=mask_email(identifier) if "@" in identifier else identifier,
        limit=limit,
        window=window,
        **extra,
    )
