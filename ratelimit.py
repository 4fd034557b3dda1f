"""
In-process sliding-window rate limiting, used as a FastAPI dependency.

Counts live in memory, so each worker process enforces its own window.
"""
import threading
import time
from collections import defaultdict, deque

from fastapi import HTTPException, Request, status


class RateLimiter:
    def __init__(self, max_requests: int, window_seconds: int, message: str):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._hits = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str, now: float = None) -> bool:
        """Record one request for ``key``; False if it is over the limit."""
        now = time.monotonic() if now is None else now
        with self._lock:
            hits = self._hits[key]
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def reset(self):
        with self._lock:
            self._hits.clear()

    async def __call__(self, request: Request):
        key = request.client.host if request.client else "unknown"
        if not self.hit(key):
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=self.message)
