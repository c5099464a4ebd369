from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.linked_account import VerificationState
from app.shared.core.constants import AWS_ACCOUNT_ID_PATTERN, AWS_ROLE_ARN_PATTERN


def _normalize_non_empty(value: str, field_name: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} must not be empty")
    return normalized


class LinkedAccountCreate(BaseModel):
    """Request body for registering a linked AWS account."""

    external_account_id: str = Field(
        ..., pattern=AWS_ACCOUNT_ID_PATTERN, description="12-digit AWS account ID"
    )
    display_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    role_arn: str = Field(
        ...,
        pattern=AWS_ROLE_ARN_PATTERN,
        description="ARN of the cross-account IAM role to assume",
    )
    external_id: Optional[str] = Field(
        default=None,
        max_length=1224,
        description="Confirmation secret required by the role's trust policy",
    )

    @field_validator("display_name")
    @classmethod
    def _display_name_not_blank(cls, value: str) -> str:
        return _normalize_non_empty(value, "display_name")


class LinkedAccountUpdate(BaseModel):
    """
    Partial update. Only fields present in the request body are applied;
    an explicit null clears `description` or `external_id`.
    """

    display_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    role_arn: Optional[str] = Field(default=None, pattern=AWS_ROLE_ARN_PATTERN)
    external_id: Optional[str] = Field(default=None, max_length=1224)

    @field_validator("display_name")
    @classmethod
    def _display_name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _normalize_non_empty(value, "display_name")


class LinkedAccountResponse(BaseModel):
    """Linked account as returned by the API. The confirmation secret is never echoed."""

    id: UUID
    external_account_id: str
    display_name: str
    description: Optional[str]
    role_arn: str
    has_external_id: bool
    status: VerificationState
    last_verified_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VerificationResponse(BaseModel):
    success: bool
    account_id: Optional[str] = None
    arn: Optional[str] = None
    message: str
