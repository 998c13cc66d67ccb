"""Coverage writes with parent-link validation.

A coverage's parent must be another coverage of the same product, and a
coverage may never become its own ancestor. Both rules are checked before
anything is written.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from product_hub.core.exceptions import CoverageHierarchyError, NotFoundError
from product_hub.repositories.base_repository import as_uuid
from product_hub.repositories.catalog_repository import CoverageRepository, ProductRepository
from product_hub.schemas.catalog import CoverageCreate, CoverageRecord
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)


def normalize_id(value: str) -> str:
    """Canonical string form of an id; malformed ids are kept as given."""
    parsed = as_uuid(value)
    return str(parsed) if parsed else value


def would_create_cycle(
    coverage_id: str, parent_id: str, parents: dict[str, Optional[str]]
) -> bool:
    """True if making ``parent_id`` the parent of ``coverage_id`` closes a loop.

    ``parents`` maps coverage id to its current parent id. Existing loops in
    the map are walked at most once.
    """
    seen: set[str] = set()
    current: Optional[str] = parent_id
    while current is not None and current not in seen:
        if current == coverage_id:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


class CoverageService:
    def __init__(self, session: AsyncSession):
        self.products = ProductRepository(session)
        self.coverages = CoverageRepository(session)

    async def _validate_parent(
        self, product_id: str, coverage_id: Optional[str], parent_id: str
    ) -> None:
        siblings = await self.coverages.list_for_product(product_id)
        parents = {c.id: c.parent_coverage_id for c in siblings}

        if parent_id not in parents:
            raise CoverageHierarchyError(
                f"Parent coverage {parent_id} does not exist in product {product_id}"
            )
        if coverage_id is not None and would_create_cycle(coverage_id, parent_id, parents):
            raise CoverageHierarchyError(
                f"Coverage {coverage_id} cannot be placed under its own descendant {parent_id}"
            )

    async def create_coverage(self, product_id: str, payload: CoverageCreate) -> CoverageRecord:
        """Create a coverage under ``product_id``.

        Raises:
            NotFoundError: If the product does not exist
            CoverageHierarchyError: If the parent is unknown or belongs to another product
        """
        product = await self.products.get_by_id(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        product_key = str(product.id)

        if payload.parent_coverage_id:
            await self._validate_parent(product_key, None, normalize_id(payload.parent_coverage_id))

        values = payload.model_dump()
        values["parent_coverage_id"] = as_uuid(payload.parent_coverage_id)
        coverage = await self.coverages.create(product_id=product.id, **values)
        LOGGER.info(
            "Coverage created",
            extra={"category": "DATA", "product_id": product_key, "coverage_id": str(coverage.id)},
        )
        return self.coverages.to_record(coverage)

    async def set_parent(self, coverage_id: str, parent_id: Optional[str]) -> CoverageRecord:
        """Re-parent a coverage; ``None`` makes it a top-level coverage.

        Raises:
            NotFoundError: If the coverage does not exist
            CoverageHierarchyError: If the new parent would create a cycle or
                crosses products
        """
        coverage = await self.coverages.get_by_id(coverage_id)
        if coverage is None:
            raise NotFoundError(f"Coverage {coverage_id} not found")
        coverage_key = str(coverage.id)

        parent_key = None
        if parent_id:
            parent_key = normalize_id(parent_id)
            if parent_key == coverage_key:
                raise CoverageHierarchyError("A coverage cannot be its own parent")
            await self._validate_parent(str(coverage.product_id), coverage_key, parent_key)

        updated = await self.coverages.update(coverage.id, parent_coverage_id=as_uuid(parent_key))
        LOGGER.info(
            "Coverage parent updated",
            extra={"category": "DATA", "coverage_id": coverage_key, "parent_id": parent_key},
        )
        return self.coverages.to_record(updated)
