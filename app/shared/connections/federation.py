"""
Credential federation for linked AWS accounts.

Turns a linked account's trust reference (role ARN plus optional
confirmation secret) into short-lived delegated credentials through STS
AssumeRole, and runs the GetCallerIdentity check used by verification.
"""

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, Optional, Protocol
from uuid import UUID

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from app.shared.adapters.aws_utils import (
    describe_aws_error,
    get_boto_session,
    open_client,
    with_aws_retry,
)
from app.shared.core.config import Settings, get_settings
from app.shared.core.exceptions import FederationError
from app.shared.core.ops_metrics import FEDERATION_REQUESTS_TOTAL

logger = structlog.get_logger()

# Credentials are treated as expired this long before STS says they are.
CREDENTIAL_EXPIRY_SKEW = timedelta(seconds=60)

_session_counter = itertools.count(1)


class TrustReference(Protocol):
    """What federation needs from a linked account."""

    id: UUID
    external_account_id: str
    role_arn: str
    external_id: Optional[str]


@dataclass(frozen=True, slots=True)
class FederatedCredentials:
    """Short-lived delegated credentials. Secret parts never appear in repr."""

    access_key_id: str = field(repr=False)
    secret_access_key: str = field(repr=False)
    session_token: str = field(repr=False)
    expiration: Optional[datetime]
    region: str

    def as_client_credentials(self) -> Dict[str, str]:
        return {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_session_token": self.session_token,
        }


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    account: str
    arn: str
    user_id: Optional[str] = None


def build_session_name(prefix: str) -> str:
    """Unique per call: `<prefix>-<epoch millis>-<sequence>`, within STS's 64 char limit."""
    name = f"{prefix}-{int(time.time() * 1000)}-{next(_session_counter)}"
    return name[-64:]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FederatedCredentialCache:
    """
    Time-boxed cache of delegated credentials keyed by (linked account id, region).

    An entry lives until min(now + ttl, credential expiry - 60s).
    """

    def __init__(
        self,
        ttl_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: Dict[tuple[UUID, str], tuple[FederatedCredentials, datetime]] = {}

    def get(self, account_id: UUID, region: str) -> Optional[FederatedCredentials]:
        entry = self._entries.get((account_id, region))
        if entry is None:
            return None
        credentials, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[(account_id, region)]
            return None
        return credentials

    def put(self, account_id: UUID, credentials: FederatedCredentials) -> None:
        now = self._clock()
        expires_at = now + self._ttl
        if credentials.expiration is not None:
            expires_at = min(expires_at, credentials.expiration - CREDENTIAL_EXPIRY_SKEW)
        if expires_at <= now:
            return
        self._entries[(account_id, credentials.region)] = (credentials, expires_at)

    def invalidate(self, account_id: UUID) -> int:
        """Drop every entry for the account. Returns the number removed."""
        keys = [key for key in self._entries if key[0] == account_id]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("federated_credentials_invalidated", account_id=str(account_id))
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@lru_cache
def get_credential_cache() -> Optional[FederatedCredentialCache]:
    """Process-wide credential cache, or None when caching is disabled."""
    settings = get_settings()
    if not settings.FEDERATION_CACHE_ENABLED:
        return None
    return FederatedCredentialCache(settings.FEDERATION_CACHE_TTL_SECONDS)


class CredentialFederationProvider:
    """
    Obtains delegated credentials for a linked account in a region.

    Every failure (provider rejection, timeout, malformed response) surfaces
    as a `FederationError` whose message names the cause.
    """

    def __init__(
        self,
        session: Optional[aioboto3.Session] = None,
        cache: Optional[FederatedCredentialCache] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session or get_boto_session()
        self.cache = cache
        self.settings = settings or get_settings()

    async def obtain(
        self,
        account: TrustReference,
        region: str,
        *,
        session_prefix: Optional[str] = None,
        use_cache: bool = True,
    ) -> FederatedCredentials:
        if not region or not region.strip():
            raise FederationError("Region must not be empty", code="federation_invalid_region")

        if use_cache and self.cache is not None:
            cached = self.cache.get(account.id, region)
            if cached is not None:
                FEDERATION_REQUESTS_TOTAL.labels(outcome="cache_hit").inc()
                return cached

        session_name = build_session_name(
            session_prefix or self.settings.FEDERATION_SESSION_PREFIX
        )
        timeout = self.settings.FEDERATION_TIMEOUT_SECONDS
        try:
            response = await asyncio.wait_for(
                self._assume_role(account, region, session_name), timeout=timeout
            )
            credentials = self._parse_credentials(response, region)
        except asyncio.TimeoutError:
            FEDERATION_REQUESTS_TOTAL.labels(outcome="failure").inc()
            logger.warning(
                "federation_timeout",
                account_id=account.external_account_id,
                region=region,
                timeout_seconds=timeout,
            )
            raise FederationError(
                f"Timeout: role assumption did not complete within {timeout:g}s",
                code="federation_timeout",
            )
        except (ClientError, BotoCoreError) as exc:
            FEDERATION_REQUESTS_TOTAL.labels(outcome="failure").inc()
            cause = describe_aws_error(exc)
            logger.warning(
                "federation_assume_role_failed",
                account_id=account.external_account_id,
                region=region,
                role_arn=account.role_arn,
                error=cause,
            )
            raise FederationError(cause) from exc

        FEDERATION_REQUESTS_TOTAL.labels(outcome="success").inc()
        logger.info(
            "federation_credentials_obtained",
            account_id=account.external_account_id,
            region=region,
            session_name=session_name,
        )
        if use_cache and self.cache is not None:
            self.cache.put(account.id, credentials)
        return credentials

    @with_aws_retry
    async def _assume_role(
        self, account: TrustReference, region: str, session_name: str
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "RoleArn": account.role_arn,
            "RoleSessionName": session_name,
            "DurationSeconds": self.settings.FEDERATION_DURATION_SECONDS,
        }
        # A blank confirmation secret is the same as none.
        if account.external_id and account.external_id.strip():
            params["ExternalId"] = account.external_id

        async with open_client(self.session, "sts", region) as sts:
            return await sts.assume_role(**params)

    @staticmethod
    def _parse_credentials(response: Dict[str, Any], region: str) -> FederatedCredentials:
        try:
            raw = response["Credentials"]
            return FederatedCredentials(
                access_key_id=raw["AccessKeyId"],
                secret_access_key=raw["SecretAccessKey"],
                session_token=raw["SessionToken"],
                expiration=raw.get("Expiration"),
                region=region,
            )
        except (KeyError, TypeError) as exc:
            FEDERATION_REQUESTS_TOTAL.labels(outcome="failure").inc()
            raise FederationError(
                "MalformedResponse: AssumeRole returned no usable credentials",
                code="federation_malformed_response",
            ) from exc

    async def get_caller_identity(self, credentials: FederatedCredentials) -> CallerIdentity:
        """Identity check performed with the delegated credentials."""
        timeout = self.settings.FEDERATION_TIMEOUT_SECONDS
        try:
            response = await asyncio.wait_for(
                self._call_get_caller_identity(credentials), timeout=timeout
            )
            return CallerIdentity(
                account=response["Account"],
                arn=response["Arn"],
                user_id=response.get("UserId"),
            )
        except asyncio.TimeoutError:
            raise FederationError(
                f"Timeout: identity check did not complete within {timeout:g}s",
                code="federation_timeout",
            )
        except (ClientError, BotoCoreError) as exc:
            raise FederationError(describe_aws_error(exc)) from exc
        except (KeyError, TypeError) as exc:
            raise FederationError(
                "MalformedResponse: GetCallerIdentity returned no identity",
                code="federation_malformed_response",
            ) from exc

    @with_aws_retry
    async def _call_get_caller_identity(self, credentials: FederatedCredentials) -> Dict[str, Any]:
        async with open_client(
            self.session, "sts", credentials.region, credentials.as_client_credentials()
        ) as sts:
            return await sts.get_caller_identity()
