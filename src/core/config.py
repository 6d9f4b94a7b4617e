"""
Core configuration for the Customs Screening Pipeline.
Manages environment variables, AWS service settings and the screening API.
"""
import logging
import os
from typing import List, Optional
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # AWS Configuration
    aws_region: str = os.getenv("AWS_REGION", "us-east-1")
    s3_bucket_name: str = os.getenv("S3_BUCKET_NAME", "")
    uploads_table_name: str = os.getenv("UPLOADS_TABLE_NAME", "")
    packages_table_name: str = os.getenv("PACKAGES_TABLE_NAME", "")
    failures_table_name: str = os.getenv("FAILURES_TABLE_NAME", "")

    # API Configuration
    api_title: str = os.getenv("API_TITLE", "Customs Screening Pipeline")
    api_version: str = os.getenv("API_VERSION", "1.0.0")

    # File Upload Limits
    max_file_size_mb: int = int(os.getenv("MAX_FILE_SIZE_MB", "10"))
    max_csv_rows: int = int(os.getenv("MAX_CSV_ROWS", "10000"))

    # Pagination Configuration
    pagination_default_limit: int = int(os.getenv("PAGINATION_DEFAULT_LIMIT", "50"))
    pagination_max_limit: int = int(os.getenv("PAGINATION_MAX_LIMIT", "500"))

    # Authentication
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")

    # Screening API
    screening_sandbox_url: str = os.getenv("SCREENING_SANDBOX_URL", "")
    screening_production_url: str = os.getenv("SCREENING_PRODUCTION_URL", "")
    screening_api_key: str = os.getenv("SCREENING_API_KEY", "")
    screening_timeout_seconds: float = float(os.getenv("SCREENING_TIMEOUT_SECONDS", "30"))
    screening_default_environment: str = os.getenv("SCREENING_DEFAULT_ENVIRONMENT", "sandbox")
    screening_verify_tls: bool = os.getenv("SCREENING_VERIFY_TLS", "true").lower() == "true"

    # Retry policy
    max_retries: int = int(os.getenv("MAX_RETRIES", "3"))
    retry_delays_seconds: List[int] = [60, 300, 900]
    batch_retry_concurrency: int = int(os.getenv("BATCH_RETRY_CONCURRENCY", "10"))
    batch_retry_default_scope: str = os.getenv("BATCH_RETRY_DEFAULT_SCOPE", "none")
    retry_stale_after_seconds: int = int(os.getenv("RETRY_STALE_AFTER_SECONDS", "900"))

    # Product images
    image_fetch_timeout_seconds: float = float(os.getenv("IMAGE_FETCH_TIMEOUT_SECONDS", "30"))
    image_fetch_max_attempts: int = int(os.getenv("IMAGE_FETCH_MAX_ATTEMPTS", "3"))
    image_fetch_backoff_seconds: float = float(os.getenv("IMAGE_FETCH_BACKOFF_SECONDS", "1.0"))
    image_fetch_concurrency: int = int(os.getenv("IMAGE_FETCH_CONCURRENCY", "4"))

    # Reference data (platform / carrier allow-lists)
    reference_data_path: Optional[str] = os.getenv("REFERENCE_DATA_PATH")
    strict_platform_domain_match: bool = os.getenv("STRICT_PLATFORM_DOMAIN_MATCH", "false").lower() == "true"

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = os.getenv("LOG_JSON", "true").lower() == "true"

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "dev")

    @property
    def jwt_secret(self) -> str:
        """Get JWT secret from Parameter Store."""
        try:
            from src.core.parameter_store import JWT_SECRET, get_secret
            return get_secret(self.environment, JWT_SECRET, self.aws_region)
        except Exception as e:
            # Fallback for local dev or if parameter doesn't exist
            fallback = os.getenv("JWT_SECRET", "dev-secret-change-in-production")
            logger.warning("Using fallback JWT secret: %s", e)
            return fallback

    def resolve_screening_api_key(self) -> str:
        """Get the screening API key from the environment, else Parameter Store."""
        if self.screening_api_key:
            return self.screening_api_key
        from src.core.parameter_store import SCREENING_API_KEY, get_secret
        return get_secret(self.environment, SCREENING_API_KEY, self.aws_region)

    def screening_base_url(self, environment: str) -> str:
        """Base URL of the screening API for a sandbox/production environment."""
        if environment == "production":
            return self.screening_production_url
        return self.screening_sandbox_url

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
