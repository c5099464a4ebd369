"""
Linked-account store.

Durable CRUD over `LinkedAccount` plus the state changes that follow from
administrative actions. Verification outcomes are recorded by the verifier
through `record_verification`.
"""

import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.linked_account import LinkedAccount, StateTrigger, VerificationState
from app.shared.connections.federation import FederatedCredentialCache
from app.shared.core.constants import AWS_ACCOUNT_ID_PATTERN, AWS_ROLE_ARN_PATTERN
from app.shared.core.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    ValidationError,
)
from app.shared.core.service import BaseService

logger = structlog.get_logger()

UPDATABLE_FIELDS = frozenset({"display_name", "description", "role_arn", "external_id"})
_REQUIRED_FIELDS = frozenset({"display_name", "role_arn"})
_TRUST_FIELDS = frozenset({"role_arn", "external_id"})


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _validate_display_name(value: Optional[str]) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("display_name must not be blank", details={"field": "display_name"})
    if len(name) > 100:
        raise ValidationError(
            "display_name must be at most 100 characters", details={"field": "display_name"}
        )
    return name


def _validate_description(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value) > 500:
        raise ValidationError(
            "description must be at most 500 characters", details={"field": "description"}
        )
    return value


def _validate_role_arn(value: Optional[str]) -> str:
    role_arn = (value or "").strip()
    if not re.fullmatch(AWS_ROLE_ARN_PATTERN, role_arn):
        raise ValidationError(
            "role_arn must look like arn:aws:iam::<12 digits>:role/<name>",
            details={"field": "role_arn"},
        )
    return role_arn


def _validate_external_account_id(value: Optional[str]) -> str:
    account_id = (value or "").strip()
    if not re.fullmatch(AWS_ACCOUNT_ID_PATTERN, account_id):
        raise ValidationError(
            "external_account_id must be exactly 12 digits",
            details={"field": "external_account_id"},
        )
    return account_id


class LinkedAccountStore(BaseService):
    def __init__(
        self,
        db: AsyncSession,
        credential_cache: Optional[FederatedCredentialCache] = None,
    ):
        super().__init__(db)
        self.credential_cache = credential_cache

    async def create(
        self,
        external_account_id: str,
        display_name: str,
        role_arn: str,
        external_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> LinkedAccount:
        """Register a new linked account in PENDING. Duplicate external ids raise ConflictError."""
        account_id = _validate_external_account_id(external_account_id)
        account = LinkedAccount(
            external_account_id=account_id,
            display_name=_validate_display_name(display_name),
            description=_validate_description(description),
            role_arn=_validate_role_arn(role_arn),
            external_id=_clean_optional(external_id),
            status=VerificationState.PENDING,
        )

        if await self.get_by_external_id(account_id) is not None:
            raise self._duplicate(account_id)

        self.db.add(account)
        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent create with the same external id.
            await self.db.rollback()
            raise self._duplicate(account_id)
        await self.db.refresh(account)

        logger.info(
            "linked_account_created",
            linked_account_id=str(account.id),
            account_id=account.external_account_id,
        )
        return account

    @staticmethod
    def _duplicate(account_id: str) -> ConflictError:
        return ConflictError(
            f"Linked account {account_id} already exists",
            details={"external_account_id": account_id},
        )

    async def get_by_id(self, account_id: UUID) -> Optional[LinkedAccount]:
        return await self.db.get(LinkedAccount, account_id)

    async def require(self, account_id: UUID) -> LinkedAccount:
        return await self._get_or_404(LinkedAccount, account_id)

    async def get_by_external_id(self, external_account_id: str) -> Optional[LinkedAccount]:
        result = await self.db.execute(
            select(LinkedAccount).where(
                LinkedAccount.external_account_id == external_account_id
            )
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[LinkedAccount]:
        result = await self.db.execute(
            select(LinkedAccount).order_by(
                LinkedAccount.created_at, LinkedAccount.external_account_id
            )
        )
        return list(result.scalars().all())

    async def list_by_state(self, state: VerificationState) -> list[LinkedAccount]:
        result = await self.db.execute(
            select(LinkedAccount)
            .where(LinkedAccount.status == state)
            .order_by(LinkedAccount.created_at, LinkedAccount.external_account_id)
        )
        return list(result.scalars().all())

    async def update(self, account_id: UUID, changes: Mapping[str, Any]) -> LinkedAccount:
        """
        Merge only the supplied fields. An explicit None clears `description`
        or `external_id`; it is rejected for required fields. Changing the
        trust reference sends a VERIFIED or FAILED account back to PENDING.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )

        account = await self._get_or_404(LinkedAccount, account_id, lock=True)

        normalized: dict[str, Any] = {}
        for field_name, value in changes.items():
            if value is None and field_name in _REQUIRED_FIELDS:
                raise ValidationError(
                    f"{field_name} must not be null", details={"field": field_name}
                )
            if field_name == "display_name":
                normalized[field_name] = _validate_display_name(value)
            elif field_name == "role_arn":
                normalized[field_name] = _validate_role_arn(value)
            elif field_name == "external_id":
                normalized[field_name] = _clean_optional(value)
            else:
                normalized[field_name] = _validate_description(value)

        trust_changed = any(
            getattr(account, name) != normalized[name]
            for name in _TRUST_FIELDS
            if name in normalized
        )

        for field_name, value in normalized.items():
            setattr(account, field_name, value)
        account.updated_at = datetime.now(timezone.utc)

        if trust_changed:
            if account.status in (VerificationState.VERIFIED, VerificationState.FAILED):
                account.apply_transition(VerificationState.PENDING, StateTrigger.TRUST_CHANGED)
            self._invalidate_credentials(account.id)

        await self.db.commit()
        await self.db.refresh(account)

        logger.info(
            "linked_account_updated",
            linked_account_id=str(account.id),
            fields=sorted(normalized),
            trust_changed=trust_changed,
        )
        return account

    async def record_verification(
        self, account: LinkedAccount, success: bool
    ) -> LinkedAccount:
        """
        Persist a verification outcome. last_verified_at moves only on success.

        The outcome belongs to the state and trust reference `account` was
        loaded with. The row is re-read under a lock first; if a concurrent
        disable, delete or trust change got there in between, nothing is
        written and the verification has to be repeated.
        """
        observed = (account.status, account.role_arn, account.external_id)
        current = await self._get_or_404(LinkedAccount, account.id, lock=True)
        if (current.status, current.role_arn, current.external_id) != observed:
            await self.db.rollback()
            logger.warning(
                "linked_account_verification_superseded",
                linked_account_id=str(current.id),
                observed_state=observed[0].value,
                current_state=current.status.value,
            )
            raise InvalidStateTransitionError(
                "Linked account changed while it was being verified",
                details={
                    "account_id": str(current.id),
                    "from": observed[0].value,
                    "current": current.status.value,
                },
            )

        account = current
        target = VerificationState.VERIFIED if success else VerificationState.FAILED
        account.apply_transition(target, StateTrigger.VERIFY)
        if success:
            account.last_verified_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(account)
        return account

    async def disable(self, account_id: UUID) -> LinkedAccount:
        account = await self._get_or_404(LinkedAccount, account_id, lock=True)
        account.apply_transition(VerificationState.DISABLED, StateTrigger.DISABLE)
        self._invalidate_credentials(account.id)
        await self.db.commit()
        await self.db.refresh(account)

        logger.info("linked_account_disabled", linked_account_id=str(account.id))
        return account

    async def delete(self, account_id: UUID) -> None:
        account = await self.require(account_id)
        await self.db.delete(account)
        await self.db.commit()
        self._invalidate_credentials(account_id)

        logger.info(
            "linked_account_deleted",
            linked_account_id=str(account_id),
            account_id=account.external_account_id,
        )

    def _invalidate_credentials(self, account_id: UUID) -> None:
        if self.credential_cache is not None:
            self.credential_cache.invalidate(account_id)
