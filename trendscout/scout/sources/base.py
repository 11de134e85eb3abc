"""Source adapter interface and shared HTTP plumbing."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception

from trendscout.core.errors import AdapterError
from trendscout.core.logging import get_logger
from trendscout.scout.types import CompetitorAnalysis, RawTrend, SocialSignal, VolumeSample

logger = get_logger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)
MAX_RETRY_AFTER_SECONDS = 60


class SourceAdapter(ABC):
    """
    Pluggable source of trend candidates for one or more platforms.

    Implementations must not touch engine state; every call is independent.
    Failures are raised as AdapterError and contained by the scan cycle.
    """

    name: str = "source"

    @abstractmethod
    async def fetch_trends(self, platform: str) -> List[RawTrend]:
        """Current trend candidates for a platform."""

    @abstractmethod
    async def fetch_volume(self, keyword: str) -> VolumeSample:
        """Current search-interest sample for a keyword."""

    async def fetch_social_signals(self, platform: str) -> List[SocialSignal]:
        """Social mentions for a platform; sources without any return []."""
        return []

    async def fetch_competitors(self, niche: str, limit: int = 10) -> List[CompetitorAnalysis]:
        """Leading creators for a niche; sources without creator data return []."""
        return []

    async def aclose(self) -> None:
        """Release network resources."""
        return None


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError))


class HTTPSourceAdapter(SourceAdapter):
    """Base for adapters backed by an HTTP API, with retry and rate-limit handling."""

    def __init__(
        self,
        timeout: float = 10.0,
        user_agent: str = "TrendScout/0.1",
        client: Optional[httpx.AsyncClient] = None
    ):
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            limits=httpx.Limits(
                max_keepalive_connections=10,
                max_connections=20,
                keepalive_expiry=30.0
            )
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    @retry(
        stop=stop_after_attempt(4),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4.0),
        retry=retry_if_exception(_is_retryable),
        reraise=True
    )
    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """
        GET with exponential backoff on 429/5xx and network errors.

        Honors a Retry-After header on 429 up to 60 seconds before the next
        attempt. Other 4xx responses raise immediately.
        """
        logger.debug(f"[{self.name}] GET {url} params={list((params or {}).keys())}")
        response = await self.client.get(url, params=params)

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    wait_time = float(retry_after)
                    if 0 < wait_time <= MAX_RETRY_AFTER_SECONDS:
                        logger.info(f"[{self.name}] Rate limited (429), waiting {wait_time}s as per Retry-After")
                        await asyncio.sleep(wait_time)
                except (ValueError, TypeError):
                    logger.warning(f"[{self.name}] Invalid Retry-After header value: {retry_after}")

        if response.status_code >= 400:
            if response.status_code in RETRYABLE_STATUS:
                logger.warning(f"[{self.name}] Retryable HTTP {response.status_code} for {url}")
            response.raise_for_status()

        return response

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._get(url, params)
        return response.json()

    async def get_text(self, url: str, params: Optional[Dict[str, Any]] = None) -> str:
        response = await self._get(url, params)
        return response.text

    def _wrap_error(self, platform: str, exc: Exception) -> AdapterError:
        if isinstance(exc, httpx.HTTPStatusError):
            message = f"HTTP {exc.response.status_code}"
        elif isinstance(exc, httpx.RequestError):
            message = f"Request error: {type(exc).__name__}: {exc}"
        else:
            message = f"Unexpected payload: {type(exc).__name__}: {exc}"
        return AdapterError(platform, message, cause=exc)


def volume_to_competition(volume: float, medium_at: float, high_at: float) -> str:
    """Bucket a raw audience size into a competition level."""
    if volume >= high_at:
        return "high"
    if volume >= medium_at:
        return "medium"
    return "low"
