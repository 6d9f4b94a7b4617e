"""
Custom exceptions for the Customs Screening Pipeline.
Provides specific error types for different failure scenarios.
"""


class CustomsPipelineException(Exception):
    """Base exception for all application errors."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationException(CustomsPipelineException):
    """Raised when a request or file cannot be accepted for validation."""
    pass


class CSVProcessingException(CustomsPipelineException):
    """Raised when CSV file processing fails."""
    pass


class UploadNotFoundException(CustomsPipelineException):
    """Raised when an upload is not found in the database."""
    pass


class FailureNotFoundException(CustomsPipelineException):
    """Raised when an API failure record is not found in the database."""
    pass


class InvalidStateException(CustomsPipelineException):
    """Raised when an operation is not allowed in the record's current status."""
    pass


class RetryInProgressException(CustomsPipelineException):
    """Raised when a failure record is already being retried."""
    pass


class S3Exception(CustomsPipelineException):
    """Raised when S3 operation fails."""
    pass


class DynamoDBException(CustomsPipelineException):
    """Raised when DynamoDB operation fails."""
    pass


class ScreeningApiException(CustomsPipelineException):
    """Raised when the screening API client is misconfigured."""
    pass
