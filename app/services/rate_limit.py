# app/services/rate_limit.py
"""
Sliding-window limiter for deliverable downloads.

Backed by the ``limits`` moving-window strategy over in-process memory
storage, keyed by requester id.
"""

from __future__ import annotations

import logging

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage
from limits.strategies import MovingWindowRateLimiter

from app.core.config import Settings
from app.core.errors import RateLimitError

logger = logging.getLogger(__name__)

NAMESPACE = "deliverable_download"


class DownloadRateLimiter:
    def __init__(self, attempts: int, window_seconds: int, storage: Storage | None = None):
        self.item = RateLimitItemPerSecond(attempts, window_seconds)
        self._limiter = MovingWindowRateLimiter(storage or MemoryStorage())

    @classmethod
    def from_settings(cls, s: Settings) -> "DownloadRateLimiter":
        return cls(s.download_rate_limit_attempts, s.download_rate_limit_window_seconds)

    def check(self, requester_id) -> None:
        """Record one attempt for ``requester_id`` or raise ``RateLimitError``."""
        if not self._limiter.hit(self.item, NAMESPACE, str(requester_id)):
            logger.warning("Download rate limit exceeded for requester %s (%s)", requester_id, self.item)
            raise RateLimitError()

    def reset(self, requester_id) -> None:
        self._limiter.clear(self.item, NAMESPACE, str(requester_id))
