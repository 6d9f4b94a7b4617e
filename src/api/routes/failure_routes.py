"""
API failure routes.
Operator endpoints to inspect, retry and resolve failed screening calls.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from src.services.failure_service import FailureService
from src.core.dependencies import get_failure_service
from src.core.auth_dependencies import verify_token
from src.models.dto.failure_dto import (
    BatchRetryRequest,
    BatchRetryResponse,
    FailureListResponse,
    FailureResponse,
    ResolveRequest,
    RetryOutcomeResponse
)
from src.core import config

router = APIRouter(prefix="/v1/api", tags=["Failures"])


@router.get("/failures", response_model=FailureListResponse)
def list_failures(
    status: Optional[str] = Query(default=None, description="Filter by retry status"),
    upload_id: Optional[str] = Query(default=None, description="Filter by upload"),
    environment: Optional[str] = Query(default=None, description="Filter by sandbox/production"),
    limit: Optional[int] = Query(default=None, ge=1, description="Maximum number of items to return"),
    offset: int = Query(default=0, ge=0, description="Number of items to skip"),
    failure_service: FailureService = Depends(get_failure_service),
    username: str = Depends(verify_token)
):
    """
    List API failures, newest first.

    - **limit**: page size (defaults to the configured page size, capped at the maximum)
    - **offset**: items to skip
    """
    failures, total = failure_service.list_failures(status, upload_id, environment, limit, offset)
    effective_limit = min(limit or config.settings.pagination_default_limit, config.settings.pagination_max_limit)
    return FailureListResponse(
        failures=[FailureResponse.model_validate(f) for f in failures],
        count=len(failures),
        total=total,
        limit=effective_limit,
        offset=offset
    )


@router.get("/failures/stats")
def failure_stats(
    upload_id: Optional[str] = Query(default=None, description="Restrict counts to one upload"),
    failure_service: FailureService = Depends(get_failure_service),
    username: str = Depends(verify_token)
):
    """Count failures per retry status."""
    return failure_service.get_stats(upload_id)


@router.post("/failures/batch-retry", response_model=BatchRetryResponse)
def batch_retry(
    request: BatchRetryRequest,
    failure_service: FailureService = Depends(get_failure_service),
    username: str = Depends(verify_token)
):
    """Retry several failures concurrently; terminal records are skipped."""
    return failure_service.batch_retry(request.failure_ids, request.upload_id).to_dict()


@router.get("/failures/{failure_id}", response_model=FailureResponse)
def get_failure(
    failure_id: str,
    failure_service: FailureService = Depends(get_failure_service),
    username: str = Depends(verify_token)
):
    return FailureResponse.model_validate(failure_service.get(failure_id))


@router.post("/failures/{failure_id}/retry", response_model=RetryOutcomeResponse)
def retry_failure(
    failure_id: str,
    failure_service: FailureService = Depends(get_failure_service),
    username: str = Depends(verify_token)
):
    """Retry one failure from its stored request."""
    return failure_service.retry(failure_id).to_dict()


@router.post("/failures/{failure_id}/resolve", response_model=FailureResponse)
def resolve_failure(
    failure_id: str,
    request: ResolveRequest,
    failure_service: FailureService = Depends(get_failure_service),
    username: str = Depends(verify_token)
):
    """Mark a failure resolved with operator notes; stops automatic retries."""
    return FailureResponse.model_validate(failure_service.resolve(failure_id, request.notes))
