from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from product_hub.core.database import get_async_session as get_session
from product_hub.core.exceptions import CoverageHierarchyError, DatabaseError, NotFoundError
from product_hub.schemas.catalog import CoverageCreate, CoverageParentUpdate, CoverageRecord
from product_hub.services.coverage_service import CoverageService
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_coverage_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> CoverageService:
    return CoverageService(db_session)


def _invalidate_snapshot(request: Request) -> None:
    source = getattr(request.app.state, "snapshot_source", None)
    if source is not None:
        source.invalidate()


def _http_error(error: Exception) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, CoverageHierarchyError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))
    LOGGER.error("Coverage write failed", extra={"category": "DATA", "error": str(error)})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Coverage could not be saved",
    )


@router.post(
    "/products/{product_id}/coverages",
    response_model=CoverageRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Create a coverage",
    operation_id="create_product_coverage",
)
async def create_coverage(
    product_id: str,
    payload: CoverageCreate,
    request: Request,
    service: Annotated[CoverageService, Depends(get_coverage_service)],
) -> CoverageRecord:
    try:
        coverage = await service.create_coverage(product_id, payload)
    except (NotFoundError, CoverageHierarchyError, DatabaseError) as e:
        raise _http_error(e)
    _invalidate_snapshot(request)
    return coverage


@router.patch(
    "/coverages/{coverage_id}/parent",
    response_model=CoverageRecord,
    summary="Move a coverage under another parent",
    operation_id="update_coverage_parent",
)
async def update_coverage_parent(
    coverage_id: str,
    payload: CoverageParentUpdate,
    request: Request,
    service: Annotated[CoverageService, Depends(get_coverage_service)],
) -> CoverageRecord:
    try:
        coverage = await service.set_parent(coverage_id, payload.parent_coverage_id)
    except (NotFoundError, CoverageHierarchyError, DatabaseError) as e:
        raise _http_error(e)
    _invalidate_snapshot(request)
    return coverage
