"""
Linked Accounts API

Administrative lifecycle of linked AWS accounts. Every endpoint requires the
admin role; the confirmation secret is accepted on write and never returned.
"""

from typing import Annotated, List
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Response, status

from app.models.linked_account import VerificationState
from app.modules.accounts.domain.store import LinkedAccountStore
from app.modules.accounts.domain.verifier import AccountVerifier
from app.schemas.linked_accounts import (
    LinkedAccountCreate,
    LinkedAccountResponse,
    LinkedAccountUpdate,
    VerificationResponse,
)
from app.shared.core.auth import CurrentUser, requires_role
from app.shared.core.dependencies import get_account_verifier, get_linked_account_store
from app.shared.core.exceptions import ResourceNotFoundError
from app.shared.core.logging import audit_log

router = APIRouter(tags=["Linked Accounts"])
logger = structlog.get_logger()

AdminUser = Annotated[CurrentUser, Depends(requires_role("admin"))]
Store = Annotated[LinkedAccountStore, Depends(get_linked_account_store)]


@router.get("", response_model=List[LinkedAccountResponse])
async def list_linked_accounts(_: AdminUser, store: Store) -> List[LinkedAccountResponse]:
    accounts = await store.list_all()
    return [LinkedAccountResponse.model_validate(a) for a in accounts]


@router.get("/verified", response_model=List[LinkedAccountResponse])
async def list_verified_accounts(_: AdminUser, store: Store) -> List[LinkedAccountResponse]:
    accounts = await store.list_by_state(VerificationState.VERIFIED)
    return [LinkedAccountResponse.model_validate(a) for a in accounts]


@router.get("/by-external-id/{external_account_id}", response_model=LinkedAccountResponse)
async def get_linked_account_by_external_id(
    external_account_id: str, _: AdminUser, store: Store
) -> LinkedAccountResponse:
    account = await store.get_by_external_id(external_account_id)
    if account is None:
        raise ResourceNotFoundError(
            f"Linked account {external_account_id} not found",
            details={"external_account_id": external_account_id},
        )
    return LinkedAccountResponse.model_validate(account)


@router.get("/{account_id}", response_model=LinkedAccountResponse)
async def get_linked_account(
    account_id: UUID, _: AdminUser, store: Store
) -> LinkedAccountResponse:
    account = await store.require(account_id)
    return LinkedAccountResponse.model_validate(account)


@router.post("", response_model=LinkedAccountResponse, status_code=status.HTTP_201_CREATED)
async def create_linked_account(
    data: LinkedAccountCreate, user: AdminUser, store: Store
) -> LinkedAccountResponse:
    account = await store.create(
        external_account_id=data.external_account_id,
        display_name=data.display_name,
        role_arn=data.role_arn,
        external_id=data.external_id,
        description=data.description,
    )
    audit_log(
        "linked_account_created",
        user.id,
        {
            "linked_account_id": str(account.id),
            "account_id": account.external_account_id,
            "role_arn": account.role_arn,
        },
    )
    return LinkedAccountResponse.model_validate(account)


@router.patch("/{account_id}", response_model=LinkedAccountResponse)
async def update_linked_account(
    account_id: UUID, data: LinkedAccountUpdate, user: AdminUser, store: Store
) -> LinkedAccountResponse:
    changes = data.model_dump(exclude_unset=True)
    account = await store.update(account_id, changes)
    audit_log(
        "linked_account_updated",
        user.id,
        {"linked_account_id": str(account.id), "fields": sorted(changes)},
    )
    return LinkedAccountResponse.model_validate(account)


@router.post("/{account_id}/verify", response_model=VerificationResponse)
async def verify_linked_account(
    account_id: UUID,
    user: AdminUser,
    verifier: Annotated[AccountVerifier, Depends(get_account_verifier)],
) -> VerificationResponse:
    result = await verifier.verify(account_id)
    audit_log(
        "linked_account_verified",
        user.id,
        {"linked_account_id": str(account_id), "success": result.success},
    )
    return VerificationResponse(
        success=result.success,
        account_id=result.account_id,
        arn=result.arn,
        message=result.message,
    )


@router.post("/{account_id}/disable", response_model=LinkedAccountResponse)
async def disable_linked_account(
    account_id: UUID, user: AdminUser, store: Store
) -> LinkedAccountResponse:
    account = await store.disable(account_id)
    audit_log("linked_account_disabled", user.id, {"linked_account_id": str(account.id)})
    return LinkedAccountResponse.model_validate(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_linked_account(account_id: UUID, user: AdminUser, store: Store) -> Response:
    await store.delete(account_id)
    audit_log("linked_account_deleted", user.id, {"linked_account_id": str(account_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
