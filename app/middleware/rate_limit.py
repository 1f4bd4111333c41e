from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable, MutableMapping

import jwt
from fastapi import HTTPException, Request

from app.core.security import decode_access_token, sha256_hex


def resolve_rate_limit_subject(request: Request) -> str:
    """
    Prefer stable user identity when available.
    Falls back to the client IP, honouring proxy headers.
    """
    auth = (request.headers.get("authorization") or "").strip()
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
        if token:
            try:
                return f"user:{decode_access_token(token)['sub']}"
            except (jwt.PyJWTError, KeyError):
                # Isolate per presented token; the route itself rejects it.
                return f"jwt:{sha256_hex(token)[:32]}"

    forwarded = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"

    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return f"ip:{real_ip}"

    ip = request.client.host if request.client else "unknown"
    return f"ip:{ip}"


class SlidingWindowRateLimiter:
    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        store: MutableMapping[str, deque[float]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.store: MutableMapping[str, deque[float]] = store if store is not None else {}
        self.clock = clock
        self._last_sweep = clock()
        self._lock = asyncio.Lock()

    def _sweep(self, window_start: float) -> None:
        stale = [subject for subject, stamps in self.store.items() if not stamps or stamps[-1] <= window_start]
        for subject in stale:
            del self.store[subject]

    async def hit(self, subject: str) -> bool:
        if self.limit <= 0:
            return True
        async with self._lock:
            now = self.clock()
            window_start = now - self.window_seconds
            # Subjects that went quiet for a whole window are dropped once per window.
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(window_start)
                self._last_sweep = now

            timestamps = self.store.get(subject)
            if timestamps is not None:
                while timestamps and timestamps[0] <= window_start:
                    timestamps.popleft()
                if len(timestamps) >= self.limit:
                    return False
            else:
                timestamps = self.store[subject] = deque()
            timestamps.append(now)
            return True


async def enforce_ai_rate_limit(request: Request) -> None:
    limiter: SlidingWindowRateLimiter | None = getattr(request.app.state, "ai_rate_limiter", None)
    if limiter is None:
        return
    if not await limiter.hit(resolve_rate_limit_subject(request)):
        raise HTTPException(status_code=429, detail="Too many requests, please try again later")
