"""
房态占用通知 - 对接库存系统
入住/退房后通知外部系统；失败只抛 UpstreamUnavailable，由发件箱记录并重试
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from hotel_occupancy.config import settings
from hotel_occupancy.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


class OccupancyNotifier(ABC):
    """房态占用通知接口

    event 结构: {"roomId": int, "guestId": int, "kind": "checkin" | "checkout"}
    """

    @abstractmethod
    def notify(self, event: Dict[str, Any]) -> None:
        """投递事件，失败抛出 UpstreamUnavailable"""


class LoggingNotifier(OccupancyNotifier):
    """未配置库存系统地址时使用，只记录日志"""

    def notify(self, event: Dict[str, Any]) -> None:
        logger.info(f"Occupancy changed (no inventory endpoint configured): {event}")


class HttpOccupancyNotifier(OccupancyNotifier):
    """通过 HTTP 通知库存系统，请求受超时限制"""

    def __init__(self, base_url: str, timeout: Optional[float] = None,
                 client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            base_url=self.base_url,
            timeout=timeout or settings.NOTIFY_TIMEOUT_SECONDS,
        )

    def notify(self, event: Dict[str, Any]) -> None:
        kind = event["kind"]
        path = f"/api/inventory/{kind}"
        try:
            resp = self._client.post(
                path,
                json={"roomId": event["roomId"], "guestId": event["guestId"]},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Inventory {kind} notification failed: {e}") from e
        logger.info(f"Inventory notified at {self.base_url}{path}")

    def close(self) -> None:
        self._client.close()


def build_notifier() -> OccupancyNotifier:
    """按配置创建通知器"""
    if settings.INVENTORY_API_BASE_URL:
        return HttpOccupancyNotifier(settings.INVENTORY_API_BASE_URL)
    return LoggingNotifier()
