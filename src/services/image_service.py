"""
Image Service for product images.
Fetches remote images and converts them to base64 for the screening request.
"""
import base64
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional
import requests
from src.core import config

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKERS = ("INSERT", "BASE64", "HERE")
MIN_INLINE_IMAGE_LENGTH = 100


def parse_image_field(value: Optional[str]) -> List[str]:
    """
    Split an image cell into individual sources.

    Inline data (data URI or bare base64) is returned as one item; otherwise
    the cell is treated as comma-separated URLs.
    """
    if not value or not value.strip():
        return []
    value = value.strip()
    if value.startswith("data:image") or "http" not in value:
        return [value]
    return [url.strip() for url in value.split(",") if url.strip()]


def is_remote(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def strip_data_uri(source: str) -> str:
    """'data:image/png;base64,AAAA' -> 'AAAA'."""
    if source.startswith("data:image"):
        return source.split(",", 1)[1] if "," in source else source
    return source


class ImageService:
    """Fetch-and-encode for product images, with retry and bounded timeout."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        concurrency: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        settings = config.settings
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else settings.image_fetch_timeout_seconds
        self.max_attempts = max_attempts if max_attempts is not None else settings.image_fetch_max_attempts
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.image_fetch_backoff_seconds
        self.concurrency = concurrency if concurrency is not None else settings.image_fetch_concurrency
        self._sleep = sleep

    def fetch_and_encode(self, url: str) -> Optional[str]:
        """
        Fetch one image and return it base64-encoded, or None on failure.

        Retries with exponential backoff on network errors, 5xx and 429.
        Other 4xx responses and non-image content types are not retried.
        """
        if not url or not url.strip():
            return None
        if url.startswith("data:image"):
            return strip_data_uri(url)

        last_error = None
        for attempt in range(self.max_attempts):
            if attempt > 0:
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.info("Retry %d/%d for image %s after %.1fs", attempt, self.max_attempts, url, delay)
                self._sleep(delay)

            try:
                response = self.session.get(
                    url,
                    headers={"Accept": "image/*"},
                    timeout=self.timeout
                )
            except requests.RequestException as e:
                last_error = str(e)
                continue

            if not response.ok:
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    logger.warning("Client error fetching image %s: %s", url, response.status_code)
                    return None
                last_error = f"HTTP {response.status_code}"
                continue

            content_type = response.headers.get("Content-Type", "")
            if not content_type.startswith("image/"):
                logger.warning("Invalid content type for image %s: %s", url, content_type)
                return None

            return base64.b64encode(response.content).decode("ascii")

        logger.warning("Failed to fetch image %s after %d attempts: %s", url, self.max_attempts, last_error)
        return None

    def process_images(self, sources: Iterable[str]) -> List[str]:
        """
        Turn image sources into base64 strings, preserving input order.

        Inline sources are kept after stripping any data URI prefix; placeholder
        text and implausibly short inline strings are skipped. Remote URLs are
        fetched concurrently; failed fetches are dropped.
        """
        expanded = []
        for source in sources:
            expanded.extend(parse_image_field(source))

        slots: List[Optional[str]] = []
        remote = []
        for source in expanded:
            if is_remote(source):
                remote.append((len(slots), source))
                slots.append(None)
                continue
            inline = strip_data_uri(source)
            if any(marker in inline for marker in PLACEHOLDER_MARKERS) or len(inline) < MIN_INLINE_IMAGE_LENGTH:
                continue
            slots.append(inline)

        if remote:
            workers = max(1, min(self.concurrency, len(remote)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                fetched = executor.map(lambda item: self.fetch_and_encode(item[1]), remote)
                for (index, _), image in zip(remote, fetched):
                    slots[index] = image

        return [image for image in slots if image and image.strip()]
