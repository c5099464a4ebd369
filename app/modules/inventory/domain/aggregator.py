"""
Cross-account resource aggregation.

A request for one resource kind is split into (account, region) units. Each
unit federates into its account, lists resources through the registered
lister and reports back a `UnitSuccess` or a `UnitFailure`. Failures are
logged and counted; they never reach the caller. Output order follows the
sequential account -> region -> provider order no matter how units finish.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional, Union
from uuid import UUID

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from app.models.linked_account import LinkedAccount, VerificationState
from app.modules.accounts.domain.store import LinkedAccountStore
from app.modules.inventory.domain.registry import (
    ResourceLister,
    ResourceListerRegistry,
    UnitOrigin,
    registry as default_registry,
)
from app.schemas.resources import ResourceOrigin
from app.shared.adapters.aws_utils import describe_aws_error
from app.shared.connections.federation import CredentialFederationProvider
from app.shared.core.config import Settings, get_settings
from app.shared.core.constants import ResourceKind, is_aws_region
from app.shared.core.exceptions import CloudForgeException, ValidationError
from app.shared.core.ops_metrics import AGGREGATION_DURATION, AGGREGATION_UNITS_TOTAL

# Registers the AWS listers.
import app.modules.inventory.adapters.aws.plugins  # noqa: F401, E402

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Detached copy of the fields a unit needs, safe to share across tasks."""

    id: UUID
    external_account_id: str
    display_name: str
    role_arn: str
    external_id: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_model(cls, account: LinkedAccount) -> "AccountSnapshot":
        return cls(
            id=account.id,
            external_account_id=account.external_account_id,
            display_name=account.display_name,
            role_arn=account.role_arn,
            external_id=account.external_id,
        )


@dataclass(frozen=True, slots=True)
class ResourceUnit:
    account: AccountSnapshot
    region: str

    @property
    def origin(self) -> UnitOrigin:
        return UnitOrigin(
            linked_account_id=self.account.id,
            account_id=self.account.external_account_id,
            account_name=self.account.display_name,
            region=self.region,
        )


@dataclass(frozen=True, slots=True)
class UnitSuccess:
    unit: ResourceUnit
    records: List[ResourceOrigin]


@dataclass(frozen=True, slots=True)
class UnitFailure:
    unit: ResourceUnit
    cause: str


UnitResult = Union[UnitSuccess, UnitFailure]


class ResourceAggregator:
    def __init__(
        self,
        store: LinkedAccountStore,
        provider: CredentialFederationProvider,
        listers: Optional[ResourceListerRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.provider = provider
        self.listers = listers or default_registry
        self.settings = settings or get_settings()

    async def list(
        self,
        kind: ResourceKind,
        account_filter: Optional[UUID] = None,
        region_filter: Optional[str] = None,
    ) -> List[ResourceOrigin]:
        """Flattened records of every successful unit, in unit order."""
        results = await self.collect(kind, account_filter, region_filter)
        return [
            record
            for result in results
            if isinstance(result, UnitSuccess)
            for record in result.records
        ]

    async def collect(
        self,
        kind: ResourceKind,
        account_filter: Optional[UUID] = None,
        region_filter: Optional[str] = None,
    ) -> List[UnitResult]:
        """Per-unit outcomes, in the order the units were planned."""
        regions = self.resolve_regions(kind, region_filter)
        lister = self.listers.get(kind)
        accounts = await self.resolve_accounts(account_filter)
        units = [ResourceUnit(account, region) for account in accounts for region in regions]
        if not units:
            logger.info(
                "resource_aggregation_empty",
                resource_kind=kind.value,
                account_filter=str(account_filter) if account_filter else None,
            )
            return []

        semaphore = asyncio.Semaphore(self.settings.AGGREGATION_MAX_CONCURRENCY)
        started = time.perf_counter()
        # gather preserves argument order, which is the planned unit order.
        results: List[UnitResult] = await asyncio.gather(
            *(self._run_unit(unit, kind, lister, semaphore) for unit in units)
        )
        elapsed = time.perf_counter() - started
        AGGREGATION_DURATION.labels(resource_kind=kind.value).observe(elapsed)

        failed = sum(1 for result in results if isinstance(result, UnitFailure))
        logger.info(
            "resource_aggregation_completed",
            resource_kind=kind.value,
            units=len(results),
            failed_units=failed,
            records=sum(len(r.records) for r in results if isinstance(r, UnitSuccess)),
            duration_seconds=round(elapsed, 3),
        )
        return results

    async def resolve_accounts(self, account_filter: Optional[UUID]) -> List[AccountSnapshot]:
        """
        VERIFIED accounts only. A filter naming a missing or non-VERIFIED
        account yields nothing rather than an error.
        """
        if account_filter is None:
            accounts = await self.store.list_by_state(VerificationState.VERIFIED)
        else:
            account = await self.store.get_by_id(account_filter)
            if account is None or account.status != VerificationState.VERIFIED:
                logger.info(
                    "resource_aggregation_account_skipped",
                    linked_account_id=str(account_filter),
                    state=account.status.value if account else None,
                )
                return []
            accounts = [account]
        return [AccountSnapshot.from_model(account) for account in accounts]

    def resolve_regions(self, kind: ResourceKind, region_filter: Optional[str]) -> List[str]:
        if kind.is_global:
            return [self.settings.GLOBAL_RESOURCE_REGION]
        if region_filter is None:
            return list(self.settings.AGGREGATION_DEFAULT_REGIONS)
        region = region_filter.strip()
        if not is_aws_region(region):
            raise ValidationError(
                f"Malformed region: {region_filter}",
                details={"region": region_filter},
            )
        return [region]

    async def _run_unit(
        self,
        unit: ResourceUnit,
        kind: ResourceKind,
        lister: ResourceLister,
        semaphore: asyncio.Semaphore,
    ) -> UnitResult:
        async with semaphore:
            try:
                records = await asyncio.wait_for(
                    self._process_unit(unit, lister),
                    timeout=self.settings.AGGREGATION_UNIT_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                return self._failure(
                    unit,
                    kind,
                    f"Timeout: unit did not complete within "
                    f"{self.settings.AGGREGATION_UNIT_TIMEOUT_SECONDS:g}s",
                )
            except CloudForgeException as exc:
                return self._failure(unit, kind, exc.message)
            except (ClientError, BotoCoreError) as exc:
                return self._failure(unit, kind, describe_aws_error(exc))
            except (KeyError, TypeError, ValueError) as exc:
                return self._failure(
                    unit, kind, f"MalformedResponse: {type(exc).__name__}: {exc}"
                )
            except Exception as exc:
                logger.error(
                    "resource_unit_unexpected_error",
                    account_id=unit.account.external_account_id,
                    region=unit.region,
                    resource_kind=kind.value,
                    exc_info=True,
                )
                return self._failure(unit, kind, f"{type(exc).__name__}: {exc}")

        AGGREGATION_UNITS_TOTAL.labels(resource_kind=kind.value, outcome="success").inc()
        return UnitSuccess(unit=unit, records=records)

    async def _process_unit(
        self, unit: ResourceUnit, lister: ResourceLister
    ) -> List[ResourceOrigin]:
        credentials = await self.provider.obtain(unit.account, unit.region)
        return await lister.list_resources(
            self.provider.session,
            unit.origin,
            credentials.as_client_credentials(),
        )

    @staticmethod
    def _failure(unit: ResourceUnit, kind: ResourceKind, cause: str) -> UnitFailure:
        AGGREGATION_UNITS_TOTAL.labels(resource_kind=kind.value, outcome="failure").inc()
        logger.warning(
            "resource_unit_failed",
            account_id=unit.account.external_account_id,
            linked_account_id=str(unit.account.id),
            region=unit.region,
            resource_kind=kind.value,
            error=cause,
        )
        return UnitFailure(unit=unit, cause=cause)
