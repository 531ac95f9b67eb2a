"""Configuration models for rolecore.

Pydantic-validated configuration for the decision engine and for the
request-pipeline integration hooks. Every field has a documented default
and is validated when the model is constructed, so a bad setting fails
before any role is built.

``load_config_from_env()`` is the only place where environment variables
are read for these settings.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _as_tuple(value: Any) -> Optional[tuple[str, ...]]:
    """Normalize ``None`` / a single string / a sequence of strings."""
    if value is None:
        return None
    if isinstance(value, str):
        return (value,) if value else ()
    return tuple(v for v in value if v)


class AuthorizerConfig(BaseModel):
    """Settings recognized when an Authorizer is built.

    Attributes:
        claim_location: Dotted path to the identity claims on the caller's
            request object (``"user"``, ``"state.user"``).
        default_claim_keys: Claim keys consulted when a decision call does
            not pass its own filter. ``None`` means every key present on the
            identity.
        strict: Reject policies in which one claim value maps to more than
            one role.
        log_level: Level applied by :func:`rolecore.logging.setup_logging`.
        log_json: Emit JSON log lines instead of plain text.
    """

    claim_location: str = Field(
        default="user",
        description="Where identity claims live on the request context",
    )
    default_claim_keys: Optional[tuple[str, ...]] = Field(
        default=None,
        description="Claim keys to authorize against (None = all keys on the identity)",
    )
    strict: bool = Field(
        default=False,
        description="Fail the build when a claim value maps to more than one role",
    )
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    @field_validator("claim_location")
    @classmethod
    def validate_claim_location(cls, v: str) -> str:
        """Claim location must name at least one attribute."""
        v = v.strip()
        if not v or any(not part for part in v.split(".")):
            raise ValueError(f"Invalid claim location: {v!r}")
        return v

    @field_validator("default_claim_keys", mode="before")
    @classmethod
    def validate_default_claim_keys(cls, v: Any) -> Optional[tuple[str, ...]]:
        """Accept a single key or a list of keys."""
        keys = _as_tuple(v)
        if keys is not None and not keys:
            return None
        return keys

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
        "frozen": True,
    }


class GuardOptions(BaseModel):
    """Options for one request-pipeline hook.

    Attributes:
        redirect: On failure, remember the original URL in the request
            session (``session["redirect"]``) so a login flow can return to it.
        permissions: Permissions required by a ``require_permissions`` hook.
        roles: Role ids accepted by a ``require_roles`` hook.
        claim_keys: Claim keys to authorize against for this hook only.
    """

    redirect: bool = False
    permissions: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()
    claim_keys: Optional[tuple[str, ...]] = None

    @field_validator("permissions", "roles", mode="before")
    @classmethod
    def validate_names(cls, v: Any) -> tuple[str, ...]:
        return _as_tuple(v) or ()

    @field_validator("claim_keys", mode="before")
    @classmethod
    def validate_claim_keys(cls, v: Any) -> Optional[tuple[str, ...]]:
        return _as_tuple(v) or None

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }


def load_config_from_env() -> AuthorizerConfig:
    """Load Authorizer configuration from environment variables.

    Environment variables:
    - ROLECORE_CLAIM_LOCATION: Claim location on the request (default: user)
    - ROLECORE_CLAIM_KEYS: Comma-separated default claim keys
    - ROLECORE_STRICT: Strict claim mapping (true/false, default: false)
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)

    Returns:
        AuthorizerConfig instance with values from environment or defaults.
    """
    import os

    claim_keys_raw = os.getenv("ROLECORE_CLAIM_KEYS", "")
    claim_keys = [k.strip() for k in claim_keys_raw.split(",") if k.strip()]

    return AuthorizerConfig(
        claim_location=os.getenv("ROLECORE_CLAIM_LOCATION", "user"),
        default_claim_keys=claim_keys or None,
        strict=os.getenv("ROLECORE_STRICT", "false").lower() in ("true", "1", "yes", "on"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in ("true", "1", "yes"),
    )


__all__ = [
    "AuthorizerConfig",
    "GuardOptions",
    "LogLevel",
    "load_config_from_env",
]
