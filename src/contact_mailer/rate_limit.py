# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Fixed-window request limiter for the HTTP API.

Each client address gets ``max_requests`` requests per window of
``window_seconds``. The counter resets when the window that started with
the client's first request expires. State is kept in memory and is local
to one process.

Example:
    Using the limiter::

        limiter = RequestRateLimiter(window_seconds=900, max_requests=100)
        if not limiter.hit(request.client.host):
            return JSONResponse({"error": "Too many requests, please try again later"}, 429)
"""

import time
from collections.abc import Callable


class RequestRateLimiter:
    """Per-client fixed-window counter.

    Attributes:
        window_seconds: Window length in seconds.
        max_requests: Requests allowed per client per window.
    """

    def __init__(
        self,
        window_seconds: float = 900,
        max_requests: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def hit(self, client: str) -> bool:
        """Count one request for ``client``; False when over the limit."""
        now = self._clock()
        started, count = self._windows.get(client, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0
        count += 1
        self._windows[client] = (started, count)
        if len(self._windows) > 10_000:
            self.prune(now)
        return count <= self.max_requests

    def retry_after(self, client: str) -> int:
        """Seconds until the client's current window resets."""
        entry = self._windows.get(client)
        if entry is None:
            return 0
        return max(0, int(entry[0] + self.window_seconds - self._clock()) + 1)

    def prune(self, now: float | None = None) -> None:
        """Drop expired windows."""
        now = self._clock() if now is None else now
        expired = [c for c, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for client in expired:
            del self._windows[client]
