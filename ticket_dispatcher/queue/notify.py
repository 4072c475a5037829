"""
Outbound job notifications.

The drain loop reports each finished job through two callbacks. This module
provides an httpx-backed implementation that POSTs them to an HTTP endpoint
(e.g. the ordering backend that submitted the ticket). Delivery is best effort:
errors are logged and dropped, queue state never depends on them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class WebhookNotifier:
    def __init__(self, base_url: Optional[str], timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _post(self, path: str, body: Dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        url = f"{self.base_url}/{path}"
        try:
            if self._client is not None:
                resp = self._client.post(url, json=body, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.post(url, json=body)
            resp.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("Notification to %s failed: %s", url, e)
            return False

    def on_job_completed(self, job_id: str) -> bool:
        return self._post("job-completed", {"jobId": job_id})

    def on_job_failed(self, job_id: str, error: str) -> bool:
        return self._post("job-failed", {"jobId": job_id, "error": error})

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


__all__ = ["WebhookNotifier"]
