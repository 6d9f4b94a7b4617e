"""
Dependency injection container for FastAPI.
Provides singleton-like behavior for services and repositories.
"""
from functools import lru_cache
from src.clients.screening_client import ScreeningClientFactory
from src.repositories.db_repository import DBRepository
from src.repositories.failure_repository import FailureRepository
from src.repositories.package_repository import PackageRepository
from src.repositories.s3_repository import S3Repository
from src.repositories.upload_repository import UploadRepository
from src.services.failure_service import FailureService
from src.services.file_service import FileService
from src.services.request_builder import RequestBuilder
from src.services.submission_service import SubmissionService
from src.services.upload_service import UploadService


@lru_cache()
def get_s3_repository() -> S3Repository:
    """Get S3Repository singleton instance."""
    return S3Repository()


@lru_cache()
def get_package_repository() -> DBRepository:
    """Get package DBRepository singleton instance."""
    return PackageRepository()


@lru_cache()
def get_upload_repository() -> UploadRepository:
    """Get UploadRepository singleton instance."""
    return UploadRepository()


@lru_cache()
def get_failure_repository() -> FailureRepository:
    """Get FailureRepository singleton instance."""
    return FailureRepository()


@lru_cache()
def get_file_service() -> FileService:
    """Get FileService singleton instance."""
    return FileService()


@lru_cache()
def get_client_factory() -> ScreeningClientFactory:
    """Get ScreeningClientFactory singleton instance."""
    return ScreeningClientFactory()


@lru_cache()
def get_upload_service() -> UploadService:
    """Get UploadService singleton instance with injected dependencies."""
    return UploadService(
        s3_repository=get_s3_repository(),
        upload_repository=get_upload_repository(),
        package_repository=get_package_repository(),
        file_service=get_file_service()
    )


@lru_cache()
def get_failure_service() -> FailureService:
    """Get FailureService singleton instance; its retry locks are process-wide."""
    return FailureService(
        failure_repository=get_failure_repository(),
        package_repository=get_package_repository(),
        client_factory=get_client_factory()
    )


@lru_cache()
def get_submission_service() -> SubmissionService:
    """Get SubmissionService singleton instance with injected dependencies."""
    return SubmissionService(
        request_builder=RequestBuilder(),
        client_factory=get_client_factory(),
        package_repository=get_package_repository(),
        failure_service=get_failure_service(),
        upload_repository=get_upload_repository(),
        s3_repository=get_s3_repository(),
        file_service=get_file_service()
    )


def clear_caches() -> None:
    """Drop every cached instance; used after settings change."""
    for provider in (
        get_s3_repository,
        get_package_repository,
        get_upload_repository,
        get_failure_repository,
        get_file_service,
        get_client_factory,
        get_upload_service,
        get_failure_service,
        get_submission_service,
    ):
        provider.cache_clear()
