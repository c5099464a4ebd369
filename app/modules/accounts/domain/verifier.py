from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog

from app.models.linked_account import StateTrigger, VerificationState, can_transition
from app.modules.accounts.domain.store import LinkedAccountStore
from app.shared.connections.federation import CredentialFederationProvider
from app.shared.core.config import get_settings
from app.shared.core.exceptions import FederationError, InvalidStateTransitionError

logger = structlog.get_logger()

VERIFIED_MESSAGE = "Account verified successfully"


@dataclass(frozen=True, slots=True)
class VerificationResult:
    success: bool
    message: str
    account_id: Optional[str] = None
    arn: Optional[str] = None


class AccountVerifier:
    """
    Proves a linked account's role is assumable by federating into it and
    asking STS who we are. The stored state and the returned result are
    derived from the same outcome.
    """

    def __init__(
        self,
        store: LinkedAccountStore,
        provider: CredentialFederationProvider,
        region: Optional[str] = None,
    ):
        self.store = store
        self.provider = provider
        self.region = region or get_settings().AWS_DEFAULT_REGION

    async def verify(self, account_id: UUID) -> VerificationResult:
        account = await self.store.require(account_id)
        if not can_transition(account.status, VerificationState.VERIFIED, StateTrigger.VERIFY):
            raise InvalidStateTransitionError(
                f"Linked account in state {account.status.value} cannot be verified",
                details={"account_id": str(account.id), "from": account.status.value},
            )

        prefix = f"{self.provider.settings.FEDERATION_SESSION_PREFIX}-verify"
        try:
            credentials = await self.provider.obtain(
                account, self.region, session_prefix=prefix, use_cache=False
            )
            identity = await self.provider.get_caller_identity(credentials)
            outcome = VerificationResult(
                success=True,
                message=VERIFIED_MESSAGE,
                account_id=identity.account,
                arn=identity.arn,
            )
        except FederationError as exc:
            outcome = VerificationResult(
                success=False,
                message=f"Verification failed: {exc.message}",
                account_id=account.external_account_id,
            )

        await self.store.record_verification(account, outcome.success)

        log = logger.info if outcome.success else logger.warning
        log(
            "linked_account_verification_completed",
            linked_account_id=str(account.id),
            account_id=account.external_account_id,
            success=outcome.success,
            state=account.status.value,
            message=outcome.message,
        )
        return outcome
