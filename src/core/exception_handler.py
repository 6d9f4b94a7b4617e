"""
Global exception handler for the Customs Screening Pipeline API.
Provides centralized error handling for all API exceptions.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from .exceptions import (
    UploadNotFoundException,
    FailureNotFoundException,
    ValidationException,
    InvalidStateException,
    RetryInProgressException,
    S3Exception,
    DynamoDBException,
    CSVProcessingException,
    ScreeningApiException
)

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""

    @app.exception_handler(UploadNotFoundException)
    async def handle_upload_not_found(request: Request, exc: UploadNotFoundException):
        return JSONResponse(
            status_code=404,
            content={"error": "Not Found", "message": exc.message}
        )

    @app.exception_handler(FailureNotFoundException)
    async def handle_failure_not_found(request: Request, exc: FailureNotFoundException):
        return JSONResponse(
            status_code=404,
            content={"error": "Not Found", "message": exc.message}
        )

    @app.exception_handler(ValidationException)
    async def handle_validation_error(request: Request, exc: ValidationException):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation Error", "message": exc.message}
        )

    @app.exception_handler(InvalidStateException)
    async def handle_invalid_state(request: Request, exc: InvalidStateException):
        return JSONResponse(
            status_code=409,
            content={"error": "Invalid State", "message": exc.message}
        )

    @app.exception_handler(RetryInProgressException)
    async def handle_retry_in_progress(request: Request, exc: RetryInProgressException):
        return JSONResponse(
            status_code=409,
            content={"error": "Retry In Progress", "message": exc.message}
        )

    @app.exception_handler(S3Exception)
    async def handle_s3_error(request: Request, exc: S3Exception):
        logger.error("S3 error on %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=500,
            content={"error": "S3 Operation Failed", "message": exc.message}
        )

    @app.exception_handler(DynamoDBException)
    async def handle_dynamodb_error(request: Request, exc: DynamoDBException):
        logger.error("DynamoDB error on %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=500,
            content={"error": "Database Error", "message": exc.message}
        )

    @app.exception_handler(CSVProcessingException)
    async def handle_csv_error(request: Request, exc: CSVProcessingException):
        return JSONResponse(
            status_code=400,
            content={"error": "CSV Processing Failed", "message": exc.message}
        )

    @app.exception_handler(ScreeningApiException)
    async def handle_screening_error(request: Request, exc: ScreeningApiException):
        logger.error("Screening API configuration error: %s", exc.message)
        return JSONResponse(
            status_code=500,
            content={"error": "Screening API Error", "message": exc.message}
        )

    @app.exception_handler(Exception)
    async def handle_generic_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": "An unexpected error occurred"}
        )
