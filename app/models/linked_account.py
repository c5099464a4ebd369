from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Enum as SAEnum, String, Text, Uuid as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy_utils import StringEncryptedType
from sqlalchemy_utils.types.encrypted.encrypted_type import AesEngine

from app.shared.core.config import get_settings
from app.shared.core.exceptions import InvalidStateTransitionError
from app.shared.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encryption_key() -> str:
    key = get_settings().ENCRYPTION_KEY
    if not key:
        raise ValueError("ENCRYPTION_KEY must be set for secure encryption.")
    return key


class VerificationState(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"
    DISABLED = "DISABLED"


class StateTrigger(str, Enum):
    """Actions that are allowed to move a linked account between states."""

    VERIFY = "verify"
    TRUST_CHANGED = "trust_changed"
    DISABLE = "disable"


_ACTIVE_STATES = (
    VerificationState.PENDING,
    VerificationState.VERIFIED,
    VerificationState.FAILED,
)

# trigger -> current state -> reachable states
# TRUST_CHANGED is an extension over verify/disable: a new role ARN or secret
# has not been proven yet, so VERIFIED and FAILED fall back to PENDING.
TRANSITIONS: dict[StateTrigger, dict[VerificationState, frozenset[VerificationState]]] = {
    StateTrigger.VERIFY: {
        state: frozenset({VerificationState.VERIFIED, VerificationState.FAILED})
        for state in _ACTIVE_STATES
    },
    StateTrigger.TRUST_CHANGED: {
        VerificationState.VERIFIED: frozenset({VerificationState.PENDING}),
        VerificationState.FAILED: frozenset({VerificationState.PENDING}),
    },
    StateTrigger.DISABLE: {
        state: frozenset({VerificationState.DISABLED}) for state in VerificationState
    },
}


def can_transition(
    current: VerificationState, target: VerificationState, trigger: StateTrigger
) -> bool:
    return target in TRANSITIONS[trigger].get(current, frozenset())


class LinkedAccount(Base):
    """
    A third-party AWS account registered through a cross-account IAM role.

    Only VERIFIED accounts take part in resource aggregation. The optional
    `external_id` is the confirmation secret presented on every AssumeRole
    and is encrypted at rest.
    """

    __tablename__ = "linked_accounts"

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    external_account_id: Mapped[str] = mapped_column(
        String(12), unique=True, nullable=False, index=True
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    role_arn: Mapped[str] = mapped_column(String(2048), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(
        StringEncryptedType(String(1224), _encryption_key, AesEngine, "pkcs5"),
        nullable=True,
    )

    status: Mapped[VerificationState] = mapped_column(
        SAEnum(VerificationState, name="verification_state", native_enum=False, length=16),
        default=VerificationState.PENDING,
        nullable=False,
        index=True,
    )
    last_verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    @property
    def has_external_id(self) -> bool:
        return bool(self.external_id and self.external_id.strip())

    def apply_transition(self, target: VerificationState, trigger: StateTrigger) -> None:
        """Move to `target` if the transition table allows it for `trigger`."""
        current = self.status or VerificationState.PENDING
        if not can_transition(current, target, trigger):
            raise InvalidStateTransitionError(
                f"Linked account cannot move from {current.value} to {target.value} via {trigger.value}",
                details={
                    "account_id": str(self.id),
                    "from": current.value,
                    "to": target.value,
                    "trigger": trigger.value,
                },
            )
        self.status = target
        self.updated_at = _utcnow()

    def __repr__(self) -> str:
        return f"<LinkedAccount {self.external_account_id} ({self.status})>"
