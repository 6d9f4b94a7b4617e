"""
Upload API routes.
Handles HTTP endpoints for CSV uploads, validation, row edits and screening submission.
"""
from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, status
from src.services.upload_service import UploadService
from src.services.submission_service import SubmissionService
from src.core.dependencies import get_upload_service, get_submission_service
from src.core.auth_dependencies import verify_token
from src.models.dto.upload_dto import (
    BatchSummaryResponse,
    PackageListResponse,
    PackageResultResponse,
    ProcessRequest,
    RowEditRequest,
    UploadResponse,
    UploadStatusResponse,
    ValidationSummaryResponse
)
from src.models.validation_result import FileValidationResult
from src.core import config

router = APIRouter(prefix="/v1/api")


def _validation_summary(upload_id: str, result: FileValidationResult) -> ValidationSummaryResponse:
    return ValidationSummaryResponse(upload_id=upload_id, **result.to_dict())


@router.post("/uploads", tags=["Uploads"], response_model=UploadResponse, status_code=status.HTTP_202_ACCEPTED)
async def upload_package_csv(
    file: UploadFile = File(..., description="CSV file containing package rows"),
    upload_service: UploadService = Depends(get_upload_service),
    username: str = Depends(verify_token)
):
    """
    Upload a CSV file of packages.

    The file is stored in S3 and validated asynchronously.
    """
    if not file.filename.lower().endswith('.csv'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are allowed"
        )

    content = await file.read()
    file_size = len(content)
    max_size_bytes = config.settings.max_file_size_mb * 1024 * 1024

    if file_size > max_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size ({file_size / (1024 * 1024):.2f}MB) exceeds maximum allowed size of {config.settings.max_file_size_mb}MB"
        )

    await file.seek(0)

    return upload_service.upload_csv(file.file, file.filename)


@router.get("/uploads/{upload_id}", tags=["Uploads"], response_model=UploadStatusResponse)
async def get_upload(
    upload_id: str,
    upload_service: UploadService = Depends(get_upload_service),
    username: str = Depends(verify_token)
):
    """Get an upload with its validation and processing results."""
    return UploadStatusResponse.model_validate(upload_service.get_upload(upload_id))


@router.post("/uploads/{upload_id}/validate", tags=["Uploads"], response_model=ValidationSummaryResponse)
def validate_upload(
    upload_id: str,
    upload_service: UploadService = Depends(get_upload_service),
    username: str = Depends(verify_token)
):
    """Validate the stored CSV synchronously."""
    return _validation_summary(upload_id, upload_service.validate_upload(upload_id))


@router.put("/uploads/{upload_id}/rows", tags=["Uploads"], response_model=ValidationSummaryResponse)
def edit_rows(
    upload_id: str,
    request: RowEditRequest,
    upload_service: UploadService = Depends(get_upload_service),
    username: str = Depends(verify_token)
):
    """
    Overwrite cells of one or more rows and re-validate the whole file.

    - **rows**: map of row number (1-based) to column values
    """
    return _validation_summary(upload_id, upload_service.update_rows(upload_id, request.rows))


@router.post("/uploads/{upload_id}/process", tags=["Uploads"], response_model=BatchSummaryResponse)
def process_upload(
    upload_id: str,
    request: ProcessRequest,
    submission_service: SubmissionService = Depends(get_submission_service),
    username: str = Depends(verify_token)
):
    """Submit every row of a validated upload for screening."""
    summary = submission_service.process_upload(upload_id, request.environment)
    return summary.to_dict()


@router.get("/uploads/{upload_id}/packages", tags=["Packages"], response_model=PackageListResponse)
async def list_packages(
    upload_id: str,
    upload_service: UploadService = Depends(get_upload_service),
    username: str = Depends(verify_token)
):
    """List the screened packages of an upload."""
    packages = [PackageResultResponse.model_validate(p) for p in upload_service.list_packages(upload_id)]
    return PackageListResponse(packages=packages, count=len(packages))
