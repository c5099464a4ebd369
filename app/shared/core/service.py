from typing import Any, Type, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.exceptions import ResourceNotFoundError

T = TypeVar("T")


class BaseService:
    """
    Base class for domain services that work on one request-scoped session.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_or_404(self, model: Type[T], id: UUID, lock: bool = False) -> T:
        """Fetch a single record by primary key or raise ResourceNotFoundError."""
        # A locked read must see the committed row, not the identity-map copy.
        options: dict[str, Any] = (
            {"with_for_update": True, "populate_existing": True} if lock else {}
        )
        record = await self.db.get(model, id, **options)
        if record is None:
            model_name = getattr(model, "__name__", "Resource")
            raise ResourceNotFoundError(
                f"{model_name} {id} not found", details={"id": str(id)}
            )
        return record
