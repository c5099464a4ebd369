"""
Dispatch table of resource listers keyed by resource kind.

A lister is any object with a `kind` and an async `list_resources` that turns
one (account, region) unit into resource records. The aggregator only talks
to this table, so adding a kind never touches the fan-out logic.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Protocol, TypeVar, runtime_checkable
from uuid import UUID

import structlog

from app.schemas.resources import ResourceOrigin
from app.shared.core.constants import ResourceKind

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class UnitOrigin:
    """Where a record came from. Copied onto every record a unit produces."""

    linked_account_id: UUID
    account_id: str
    account_name: str
    region: str

    def as_fields(self) -> Dict[str, Any]:
        return {
            "linked_account_id": self.linked_account_id,
            "account_id": self.account_id,
            "account_name": self.account_name,
            "region": self.region,
        }


@runtime_checkable
class ResourceLister(Protocol):
    kind: ResourceKind

    async def list_resources(
        self,
        session: Any,
        origin: UnitOrigin,
        credentials: Mapping[str, str],
    ) -> List[ResourceOrigin]: ...


ListerT = TypeVar("ListerT")


class ResourceListerRegistry:
    def __init__(self) -> None:
        self._listers: Dict[ResourceKind, ResourceLister] = {}

    def register(self, kind: ResourceKind) -> Callable[[type[ListerT]], type[ListerT]]:
        """Class decorator: instantiate the lister and file it under `kind`."""

        def decorator(cls: type[ListerT]) -> type[ListerT]:
            lister = cls()
            if not isinstance(lister, ResourceLister):
                raise TypeError(f"{cls.__name__} does not implement ResourceLister")
            if kind in self._listers:
                logger.warning(
                    "resource_lister_replaced",
                    resource_kind=kind.value,
                    lister=cls.__name__,
                )
            self._listers[kind] = lister
            return cls

        return decorator

    def get(self, kind: ResourceKind) -> ResourceLister:
        try:
            return self._listers[kind]
        except KeyError:
            raise LookupError(f"No resource lister registered for {kind.value}") from None

    def kinds(self) -> List[ResourceKind]:
        return list(self._listers)


registry = ResourceListerRegistry()
