from typing import Any, ClassVar, Dict, Generic, List, Optional, Type, TypeVar, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from product_hub.core.exceptions import DatabaseError
from product_hub.schemas.catalog import CatalogRecord
from product_hub.utils.logging import get_logger

ModelType = TypeVar("ModelType")
RecordType = TypeVar("RecordType", bound=CatalogRecord)

LOGGER = get_logger(__name__)


def as_uuid(value: Union[str, UUID, None]) -> Optional[UUID]:
    """Coerce an id to UUID; malformed ids become ``None``."""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class BaseRepository(Generic[ModelType, RecordType]):
    """Common CRUD for one table plus conversion to catalog records.

    Subclasses set ``record_type`` and, where order matters, ``order_by``.
    SQLAlchemy failures are logged and re-raised as ``DatabaseError``.
    """

    record_type: ClassVar[Type[CatalogRecord]]
    order_by: ClassVar[tuple[str, ...]] = ()

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _fail(self, action: str, error: SQLAlchemyError) -> DatabaseError:
        self.logger.error(
            f"Error {action} {self.model.__name__}: {error}",
            exc_info=True,
            extra={"category": "DATA"},
        )
        return DatabaseError(f"Failed {action} {self.model.__name__}", error)

    def _ordered(self, query):
        for column in self.order_by:
            query = query.order_by(getattr(self.model, column))
        return query

    def to_record(self, instance: ModelType) -> RecordType:
        return self.record_type.model_validate(instance)

    async def get_by_id(self, id: Union[str, UUID]) -> Optional[ModelType]:
        """Get a row by id; unknown or malformed ids return None."""
        key = as_uuid(id)
        if key is None:
            return None
        try:
            result = await self.session.execute(select(self.model).where(self.model.id == key))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("retrieving", e) from e

    async def list_all(self, filters: Optional[Dict[str, Any]] = None) -> List[ModelType]:
        """Full-collection read with optional equality filters."""
        try:
            query = select(self.model)
            if filters:
                for field, value in filters.items():
                    if hasattr(self.model, field):
                        query = query.where(getattr(self.model, field) == value)
            result = await self.session.execute(self._ordered(query))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._fail("listing", e) from e

    async def list_records(self, filters: Optional[Dict[str, Any]] = None) -> List[RecordType]:
        return [self.to_record(row) for row in await self.list_all(filters)]

    async def create(self, **kwargs) -> ModelType:
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("creating", e) from e

    async def update(self, id: Union[str, UUID], **kwargs) -> Optional[ModelType]:
        try:
            instance = await self.get_by_id(id)
            if instance is None:
                return None
            for key, value in kwargs.items():
                if hasattr(instance, key):
                    setattr(instance, key, value)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("updating", e) from e

    async def delete(self, id: Union[str, UUID]) -> bool:
        try:
            instance = await self.get_by_id(id)
            if instance is None:
                return False
            await self.session.delete(instance)
            await self.session.commit()
            return True
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("deleting", e) from e
