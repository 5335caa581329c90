import logging
from typing import Any, Dict, List, Optional

import requests

from smartgarden.core.config import settings
from smartgarden.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class AdafruitClient:
    """
    Minimal client for the Adafruit IO REST API (``/feeds/<feed>/data``).

    Errors are raised as ``UpstreamError``; callers decide whether one feed
    failing should fail the whole operation.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.username = username or settings.AIO_USERNAME
        self.key = key or settings.AIO_KEY
        self.base_url = (base_url or settings.AIO_API_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _url(self, feed: str) -> str:
        return f"{self.base_url}/{self.username}/feeds/{feed}/data"

    def _request(self, method: str, feed: str, **kwargs) -> Any:
        try:
            response = self.session.request(
                method,
                self._url(feed),
                headers={"X-AIO-Key": self.key or ""},
                timeout=self.timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise UpstreamError(f"Adafruit IO {method} {feed} failed: {e}", detail={"feed": feed}) from e
        except ValueError as e:
            raise UpstreamError(f"Adafruit IO returned invalid JSON for {feed}", detail={"feed": feed}) from e

    def data(self, feed: str, limit: int = 1) -> List[Dict[str, Any]]:
        return self._request("GET", feed, params={"limit": limit})

    def latest(self, feed: str) -> Optional[Dict[str, Any]]:
        rows = self.data(feed, limit=1)
        return rows[0] if rows else None

    def send(self, feed: str, value: str) -> Dict[str, Any]:
        logger.debug("POST %s <- %s", feed, value)
        return self._request("POST", feed, json={"value": value})
