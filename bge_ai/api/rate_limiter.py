"""
Simple Rate Limiting for the AI Gateway
=======================================

Sliding-window limits per client, kept in memory. One limiter lives on
``app.state`` for the lifetime of the process.
"""

import asyncio
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional, Tuple

from fastapi import HTTPException, Request

WINDOWS = {
    "per_minute": 60,
    "per_hour": 3600,
    "per_day": 86400,
}

DEFAULT_LIMITS = {
    "per_minute": 30,
    "per_hour": 500,
    "per_day": 3000,
}

# Remote providers are paid per token; analysis prompts are the largest
ENDPOINT_LIMITS: Dict[str, Dict[str, int]] = {
    "/ai/analyze": {
        "per_minute": 5,
        "per_hour": 60,
        "per_day": 300,
    },
    "/ai/reload": {
        "per_minute": 2,
        "per_hour": 20,
        "per_day": 100,
    },
    "/ai/health": {
        "per_minute": 120,
        "per_hour": 3600,
        "per_day": 50000,
    },
}


class RateLimiter:
    """
    In-memory rate limiter using a sliding window.

    Suitable for a single-instance deployment.
    """

    def __init__(
        self,
        enabled: bool = True,
        default_limits: Optional[Dict[str, int]] = None,
        endpoint_limits: Optional[Dict[str, Dict[str, int]]] = None,
    ):
        self.enabled = enabled
        self.lock = asyncio.Lock()
        self.default_limits = dict(default_limits or DEFAULT_LIMITS)
        self.endpoint_limits = dict(ENDPOINT_LIMITS if endpoint_limits is None else endpoint_limits)
        # history must hold every request the largest window can count
        self.history_size = max(
            [*self.default_limits.values()]
            + [limit for limits in self.endpoint_limits.values() for limit in limits.values()]
            + [1]
        )
        self.requests: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=self.history_size))

    async def check_rate_limit(
        self,
        key: str,
        endpoint: Optional[str] = None,
        now: Optional[float] = None,
    ) -> Tuple[bool, Optional[int]]:
        """
        Check if a request is within rate limits and record it if so.

        Args:
            key: Client identifier (IP address or user id)
            endpoint: Request path, for endpoint-specific limits
            now: Current time (defaults to time.time())

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if not self.enabled:
            return True, None

        async with self.lock:
            now = time.time() if now is None else now
            bucket_key = f"{key}|{endpoint or '*'}"
            self._clean_old_requests(bucket_key, now)

            timestamps = self.requests[bucket_key]
            for window_name, limit in self._get_limits(endpoint).items():
                window_seconds = WINDOWS.get(window_name, 60)
                window_start = now - window_seconds
                in_window = [t for t in timestamps if t > window_start]

                if len(in_window) >= limit:
                    retry_after = int(window_seconds - (now - min(in_window))) + 1
                    return False, retry_after

            timestamps.append(now)
            return True, None

    def _clean_old_requests(self, key: str, now: float) -> None:
        """Drop timestamps older than the longest window."""
        horizon = now - max(WINDOWS.values())
        timestamps = self.requests[key]
        while timestamps and timestamps[0] <= horizon:
            timestamps.popleft()

    def _get_limits(self, endpoint: Optional[str]) -> Dict[str, int]:
        if endpoint:
            if endpoint in self.endpoint_limits:
                return self.endpoint_limits[endpoint]
            for prefix, limits in self.endpoint_limits.items():
                if endpoint.startswith(prefix):
                    return limits
        return self.default_limits

    def get_client_key(self, request: Request, user_id: Optional[str] = None) -> str:
        """
        Rate limiting key: the user id when authenticated, otherwise the client IP.
        """
        if user_id:
            return f"user:{user_id}"

        client_ip = request.client.host if request.client else "unknown"

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            client_ip = real_ip

        return f"ip:{client_ip}"

    async def rate_limit_endpoint(self, request: Request, user_id: Optional[str] = None) -> None:
        """
        Raises:
            HTTPException: 429 Too Many Requests if the limit is exceeded
        """
        key = self.get_client_key(request, user_id)
        allowed, retry_after = await self.check_rate_limit(key, str(request.url.path))

        if not allowed:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
                headers={"Retry-After": str(retry_after)},
            )


async def check_rate_limit(request: Request) -> None:
    """
    FastAPI dependency applying the app's limiter.

    Usage:
        @router.post("/ai/process", dependencies=[Depends(check_rate_limit)])
    """
    limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is not None:
        await limiter.rate_limit_endpoint(request)
