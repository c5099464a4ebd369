import sys
import re
import structlog
import logging
from typing import Any, cast
from app.shared.core.config import get_settings

_SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "authorization",
    "external_id",
    "access_key_id",
    "secret_access_key",
    "session_token",
    "credentials",
}
_SENSITIVE_SUFFIXES = ("_token", "_secret", "_password", "_key")
_SENSITIVE_CONTAINS = ("secret", "token", "password", "credential")


def _is_sensitive_key(key: Any) -> bool:
    # CamelCase provider keys (SecretAccessKey, ExternalId) normalise to snake_case.
    raw = str(key).strip()
    key_norm = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", raw).lower().replace("-", "_")
    if key_norm in _SENSITIVE_FIELDS:
        return True
    if key_norm.endswith(_SENSITIVE_SUFFIXES):
        return True
    return any(fragment in key_norm for fragment in _SENSITIVE_CONTAINS)


def sensitive_field_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Recursively mask credential material and confirmation secrets.
    Delegated credentials must never reach a log sink.
    """

    def redact_recursive(data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: ("[REDACTED]" if _is_sensitive_key(k) else redact_recursive(v))
                for k, v in data.items()
            }
        if isinstance(data, list):
            return [redact_recursive(item) for item in data]
        return data

    redacted = redact_recursive(event_dict)
    if isinstance(redacted, dict):
        return cast(dict[str, Any], redacted)
    return {}


def setup_logging() -> None:
    settings = get_settings()

    base_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        sensitive_field_redactor,
    ]

    if settings.DEBUG:
        renderer: Any = structlog.dev.ConsoleRenderer()
        processors = base_processors + [renderer]
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        processors = base_processors + [structlog.processors.dict_tracebacks, renderer]
        min_level = logging.INFO

    structlog.configure(
        processors=cast(Any, processors),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Route stdlib logging (uvicorn, botocore) through the same stream.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=min_level,
    )


def audit_log(
    event: str,
    actor: str,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Standardized helper for administrative audit events on linked accounts.
    """
    logger = structlog.get_logger("audit")
    logger.info(
        event,
        actor=str(actor),
        metadata=details or {},
    )
