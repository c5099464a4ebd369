"""
Shared aioboto3 plumbing for federation and resource listing.

Every AWS call in the service goes through a client built here so that socket
timeouts, the optional endpoint override and delegated credentials are applied
the same way everywhere.
"""

from collections.abc import AsyncGenerator
from functools import wraps
from typing import Any, Dict, Mapping, Optional

import aioboto3
import structlog
import tenacity
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from app.shared.core.config import get_settings
from app.shared.core.exceptions import AdapterError

logger = structlog.get_logger()

# Socket timeouts for all AWS API calls. Botocore retries are off: transient
# network failures get exactly one retry through `with_aws_retry`.
DEFAULT_BOTO_CONFIG = BotoConfig(
    read_timeout=30,
    connect_timeout=10,
    retries={"max_attempts": 1, "mode": "standard"},
)

TRANSIENT_AWS_ERRORS = (ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError)

# Mapping CamelCase to snake_case for aioboto3 credentials
AWS_CREDENTIAL_MAPPING = {
    "AccessKeyId": "aws_access_key_id",
    "SecretAccessKey": "aws_secret_access_key",
    "SessionToken": "aws_session_token",
    "aws_access_key_id": "aws_access_key_id",
    "aws_secret_access_key": "aws_secret_access_key",
    "aws_session_token": "aws_session_token",
}


def map_aws_credentials(credentials: Mapping[str, Any]) -> Dict[str, str]:
    """
    Maps a credentials mapping to aioboto3 client kwargs.
    Accepts both the STS response shape and snake_case keys.
    """
    mapped: Dict[str, str] = {}
    if not credentials:
        return mapped

    for src, dst in AWS_CREDENTIAL_MAPPING.items():
        if src in credentials:
            mapped[dst] = credentials[src]

    return mapped


def get_boto_session() -> aioboto3.Session:
    """Returns a fresh aioboto3 session."""
    return aioboto3.Session()


def build_client_kwargs(
    region: str, credentials: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Keyword arguments for `session.client(service, **kwargs)`."""
    kwargs: Dict[str, Any] = {
        "region_name": region,
        "config": DEFAULT_BOTO_CONFIG,
    }
    endpoint_url = get_settings().AWS_ENDPOINT_URL
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    if credentials:
        kwargs.update(map_aws_credentials(credentials))
    return kwargs


def describe_aws_error(exc: Exception) -> str:
    """Human-readable cause for an AWS failure, never a traceback."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "Unknown")
        message = error.get("Message") or str(exc)
        return f"{code}: {message}"
    if isinstance(exc, BotoCoreError):
        return f"{type(exc).__name__}: {exc}"
    return str(exc) or type(exc).__name__


def with_aws_retry(func: Any) -> Any:
    """
    Retry a coroutine once on transient network failures
    (connect timeout, read timeout, endpoint unreachable).
    """

    def _before_sleep(retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.debug(
            "aws_retrying",
            attempt=retry_state.attempt_number,
            error=str(exc) if exc else None,
            function=getattr(retry_state.fn, "__name__", "unknown"),
        )

    def _build_retry_config() -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "retry": tenacity.retry_if_exception_type(TRANSIENT_AWS_ERRORS),
            "wait": tenacity.wait_exponential(multiplier=0.5, min=0.5, max=2),
            "stop": tenacity.stop_after_attempt(2),
            "before_sleep": _before_sleep,
            "reraise": True,
        }
        if get_settings().TESTING:
            # Avoid real sleeps during tests while preserving retry semantics.
            config["wait"] = tenacity.wait_none()
        return config

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        retrying = tenacity.AsyncRetrying(**_build_retry_config())
        async for attempt in retrying:
            with attempt:
                return await func(*args, **kwargs)

    return wrapper


async def iter_paginated(
    client: Any,
    operation: str,
    *,
    max_pages: Optional[int] = None,
    **paginate_kwargs: Any,
) -> AsyncGenerator[Dict[str, Any], None]:
    """
    Stream pages of a paginated AWS operation, stopping at `max_pages`.
    Defaults to AGGREGATION_MAX_PAGES.
    """
    if max_pages is None:
        max_pages = get_settings().AGGREGATION_MAX_PAGES
    if max_pages <= 0:
        raise ValueError("max_pages must be > 0")

    paginator = client.get_paginator(operation)
    pages_seen = 0
    async for page in paginator.paginate(**paginate_kwargs):
        pages_seen += 1
        yield page
        if pages_seen >= max_pages:
            logger.warning(
                "aws_paginator_page_cap_reached",
                operation=operation,
                max_pages=max_pages,
            )
            break


def open_client(
    session: Any,
    service_name: str,
    region: str,
    credentials: Optional[Mapping[str, Any]] = None,
) -> Any:
    """Async context manager for a service client bound to exactly one region."""
    return session.client(service_name, **build_client_kwargs(region, credentials))


def find_tag(tags: Optional[list[Dict[str, Any]]], key: str) -> Optional[str]:
    """Value of the first `{"Key": key, "Value": ...}` entry, if any."""
    for tag in tags or []:
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


def require_field(item: Mapping[str, Any], key: str, operation: str) -> Any:
    """A field every item of `operation` must carry; its absence is a malformed response."""
    value = item.get(key)
    if value is None:
        raise AdapterError(
            f"MalformedResponse: {operation} returned an item without {key}",
            details={"operation": operation, "field": key},
        )
    return value
