from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.accounts.domain.store import LinkedAccountStore
from app.modules.accounts.domain.verifier import AccountVerifier
from app.modules.inventory.domain.aggregator import ResourceAggregator
from app.shared.connections.federation import (
    CredentialFederationProvider,
    FederatedCredentialCache,
    get_credential_cache,
)
from app.shared.db.session import get_db


def get_federation_provider(
    cache: Annotated[Optional[FederatedCredentialCache], Depends(get_credential_cache)],
) -> CredentialFederationProvider:
    return CredentialFederationProvider(cache=cache)


def get_linked_account_store(
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[Optional[FederatedCredentialCache], Depends(get_credential_cache)],
) -> LinkedAccountStore:
    return LinkedAccountStore(db, credential_cache=cache)


def get_account_verifier(
    store: Annotated[LinkedAccountStore, Depends(get_linked_account_store)],
    provider: Annotated[CredentialFederationProvider, Depends(get_federation_provider)],
) -> AccountVerifier:
    return AccountVerifier(store, provider)


def get_resource_aggregator(
    store: Annotated[LinkedAccountStore, Depends(get_linked_account_store)],
    provider: Annotated[CredentialFederationProvider, Depends(get_federation_provider)],
) -> ResourceAggregator:
    return ResourceAggregator(store, provider)
