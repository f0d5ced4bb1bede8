"""Operational safety helpers for request handling and config validation."""

from __future__ import annotations

from typing import Any

from apps.api.app.core.config import Settings

_REDACTED = "***REDACTED***"
_SENSITIVE_KEYS = {
    "api_key",
    "authorization",
    "token",
    "secret",
    "password",
    "internal_api_token",
    "x_internal_token",
    "email",
}
_SUPPORTED_DATABASE_SCHEMES = ("sqlite", "postgresql")


def _is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    normalized = key_lower.replace("-", "_")
    return (
        normalized in _SENSITIVE_KEYS
        or normalized.endswith("_key")
        or normalized.endswith("_token")
        or normalized.endswith("email")
        or "authorization" in normalized
    )


def redact_sensitive_fields(value: Any) -> Any:
    if isinstance(value, dict):
        redacted: dict[str, Any] = {}
        for key, nested in value.items():
            if _is_sensitive_key(key):
                redacted[key] = _REDACTED
            else:
                redacted[key] = redact_sensitive_fields(nested)
        return redacted
    if isinstance(value, list):
        return [redact_sensitive_fields(item) for item in value]
    return value


def validate_runtime_configuration(settings: Settings) -> None:
    if settings.stale_evidence_days <= 0:
        raise ValueError("Invalid runtime configuration: stale evidence days must be > 0")
    scheme = settings.database_url.split(":", 1)[0].split("+", 1)[0]
    if scheme not in _SUPPORTED_DATABASE_SCHEMES:
        raise ValueError(
            f"Invalid runtime configuration: unsupported database url scheme '{scheme}'"
        )
    if not settings.request_id_header.strip():
        raise ValueError("Invalid runtime configuration: request id header must be non-empty")
    if settings.runtime_environment == "production" and not settings.internal_api_token:
        raise ValueError(
            "Invalid runtime configuration: internal_api_token is required in production"
        )
