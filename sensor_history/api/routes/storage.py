from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sensor_history.api.deps import (
    AdminUser,
    ReadUser,
    get_reading_repository,
    get_retention_service,
)
from sensor_history.core.errors import StorageUnavailable
from sensor_history.repositories.base import ReadingRepository
from sensor_history.schemas.readings import ClearResponse, StorageStatsRead, SweepResponse
from sensor_history.services.retention import RetentionService
from sensor_history.services.statistics import storage_statistics

router = APIRouter(prefix="/storage")


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Storage unavailable",
    )


@router.get("/stats", response_model=StorageStatsRead)
def read_storage_stats(
    _: ReadUser,
    repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
) -> StorageStatsRead:
    try:
        stats = storage_statistics(repo)
    except StorageUnavailable as e:
        raise _unavailable() from e
    return StorageStatsRead.from_stats(stats)


@router.post("/sweep", response_model=SweepResponse)
def run_sweep(
    _: AdminUser,
    service: Annotated[RetentionService, Depends(get_retention_service)],
    force: Annotated[bool, Query()] = False,
) -> SweepResponse:
    try:
        result = service.maybe_sweep(force=force)
    except StorageUnavailable as e:
        raise _unavailable() from e
    return SweepResponse(
        deleted=result.deleted,
        skipped=result.skipped,
        retry_after_seconds=result.retry_after_seconds,
        cutoff=result.cutoff,
    )


@router.delete("/readings", response_model=ClearResponse)
def clear_readings(
    _: AdminUser,
    repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
) -> ClearResponse:
    try:
        deleted = repo.clear()
    except StorageUnavailable as e:
        raise _unavailable() from e
    return ClearResponse(deleted=deleted)


@router.get("/health", tags=["meta"])
def health(
    repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
) -> dict[str, str]:
    try:
        repo.ping()
    except StorageUnavailable as e:
        raise _unavailable() from e
    return {"status": "ok"}
