"""
HTTP client for the external customs screening API.
Every call returns an ApiResponse envelope; HTTP and network failures are
reported through the envelope, never raised.
"""
import logging
from typing import Any, Optional
import requests
from src.core import config
from src.core.exceptions import ScreeningApiException
from src.models.dto.screening_dto import ApiResponse

logger = logging.getLogger(__name__)

SCREEN_PACKAGE_ENDPOINT = "/v1/package/screen"
SCREEN_PRODUCT_ENDPOINT = "/v1/product/screen"
PLATFORMS_ENDPOINT = "/v1/platform"
PACKAGE_AUDIT_ENDPOINT = "/v1/package/audit"
DUTY_PAY_ENDPOINT = "/v1/duty/pay"
SHIPMENT_REGISTER_ENDPOINT = "/v1/shipment/register"
SHIPMENT_VERIFY_ENDPOINT = "/v1/shipment/verify"

ENVIRONMENTS = ("sandbox", "production")


class ScreeningClient:
    """Client for one screening API environment."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        environment: str = "sandbox",
        timeout: Optional[float] = None,
        verify_tls: Optional[bool] = None,
        session: Optional[requests.Session] = None
    ):
        if not base_url or not api_key:
            raise ScreeningApiException("Screening API URL and API key are required")

        self.base_url = base_url.rstrip("/")
        self.environment = environment
        self.timeout = timeout if timeout is not None else config.settings.screening_timeout_seconds
        self.verify_tls = verify_tls if verify_tls is not None else config.settings.screening_verify_tls
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"ApiKey {api_key}",
        })

    def _request(self, method: str, endpoint: str, payload: Optional[dict] = None) -> ApiResponse:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                timeout=self.timeout,
                verify=self.verify_tls
            )
        except requests.RequestException as e:
            logger.warning("Screening API %s %s failed: %s", method, endpoint, e)
            return ApiResponse.fail("NETWORK_ERROR", str(e) or "Network error occurred")

        body = self._decode(response)

        if not response.ok:
            message = None
            if isinstance(body, dict):
                message = body.get("message")
            message = message or response.reason or f"HTTP {response.status_code}"
            logger.info("Screening API %s %s returned %s", method, endpoint, response.status_code)
            return ApiResponse.fail(str(response.status_code), message, body)

        if body is None:
            return ApiResponse.fail("INVALID_RESPONSE", "Response body is not valid JSON", response.text[:500])

        return ApiResponse.ok(body)

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    def get_platforms(self) -> ApiResponse:
        """List platforms supported by the screening API."""
        return self._request("GET", PLATFORMS_ENDPOINT)

    def screen_product(self, request: dict) -> ApiResponse:
        return self._request("POST", SCREEN_PRODUCT_ENDPOINT, request)

    def screen_package(self, request: dict) -> ApiResponse:
        """Screen a complete package; data carries the verdict code 1-4."""
        return self._request("POST", SCREEN_PACKAGE_ENDPOINT, request)

    def submit_audit(self, request: dict) -> ApiResponse:
        return self._request("POST", PACKAGE_AUDIT_ENDPOINT, request)

    def pay_duty(self, request: dict) -> ApiResponse:
        return self._request("POST", DUTY_PAY_ENDPOINT, request)

    def register_shipment(self, request: dict) -> ApiResponse:
        return self._request("POST", SHIPMENT_REGISTER_ENDPOINT, request)

    def verify_shipment(self, request: dict) -> ApiResponse:
        return self._request("POST", SHIPMENT_VERIFY_ENDPOINT, request)


class ScreeningClientFactory:
    """Builds and caches one client per environment."""

    def __init__(self):
        self._clients = {}

    def get_client(self, environment: Optional[str] = None) -> ScreeningClient:
        """
        Get the client for a sandbox/production environment.

        Raises:
            ScreeningApiException: If the environment is unknown or not configured
        """
        environment = environment or config.settings.screening_default_environment
        if environment not in ENVIRONMENTS:
            raise ScreeningApiException(f"Unknown screening environment: {environment}")

        if environment not in self._clients:
            try:
                api_key = config.settings.resolve_screening_api_key()
            except Exception as e:
                raise ScreeningApiException(f"Screening API key is not configured: {str(e)}") from e
            self._clients[environment] = ScreeningClient(
                base_url=config.settings.screening_base_url(environment),
                api_key=api_key,
                environment=environment
            )
        return self._clients[environment]
