"""Hot-trend notifications.

One notify() call per scan cycle carries every trend above the hot
threshold. Delivery is at-least-once: webhook receivers must tolerate the
same batch arriving twice after a retried POST.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from trendscout.core.errors import NotificationError
from trendscout.core.logging import get_logger
from trendscout.core.settings import Settings, get_settings
from trendscout.core.time import utc_now
from trendscout.scout.types import Trend

logger = get_logger(__name__)


class Notifier(ABC):
    """Receives the hot trends of one scan cycle."""

    @abstractmethod
    async def notify(self, hot_trends: Sequence[Trend], scan_id: Optional[str] = None) -> None:
        """Deliver a batch; raise NotificationError on failure."""

    async def aclose(self) -> None:
        return None


class LogNotifier(Notifier):
    """Writes the alert to the log only."""

    async def notify(self, hot_trends: Sequence[Trend], scan_id: Optional[str] = None) -> None:
        logger.info(f"HOT TRENDS ALERT ({len(hot_trends)}):")
        for trend in hot_trends:
            logger.info(f"  - {trend.topic} (score: {trend.trend_score:.0f}, platforms: {', '.join(sorted(trend.platforms))})")


class WebhookNotifier(Notifier):
    """POSTs the batch as JSON to a webhook, retrying transient failures."""

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4.0),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True
    )
    async def _post(self, payload: dict) -> httpx.Response:
        response = await self.client.post(self.url, json=payload)
        response.raise_for_status()
        return response

    async def notify(self, hot_trends: Sequence[Trend], scan_id: Optional[str] = None) -> None:
        payload = {
            "event": "hot_trends",
            "scan_id": scan_id,
            "sent_at": utc_now().isoformat(),
            "count": len(hot_trends),
            "trends": [t.to_dict() for t in hot_trends],
        }
        try:
            await self._post(payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook delivery to {self.url} failed: {e}") from e
        logger.info(f"Delivered {len(hot_trends)} hot trends to webhook")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def build_notifier(settings: Optional[Settings] = None) -> Notifier:
    settings = settings or get_settings()
    if settings.notify_webhook_url:
        return WebhookNotifier(settings.notify_webhook_url, timeout=settings.http_timeout_seconds)
    return LogNotifier()
