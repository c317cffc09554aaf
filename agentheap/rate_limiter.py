"""Sliding-window rate gate in front of every LLM call.

Bounds requests and tokens per minute per key (usually one provider/model or
llm config id) and keeps queue state so callers can show what is waiting.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from agentheap.config import RATE_LIMIT_MAX_SLEEP_SECONDS, RATE_LIMIT_WINDOW_SECONDS

logger = logging.getLogger(__name__)

RECENT_DELAYED_MAX = 200
MIN_RECORDED_WAIT = 0.05  # seconds


@dataclass
class RateLimitConfig:
    requests_per_minute: int
    tokens_per_minute: int | None = None  # None = no token cap


# Conservative per-provider defaults (typical paid tiers). Configs may override.
DEFAULT_RATE_LIMITS: dict[str, RateLimitConfig] = {
    "openai": RateLimitConfig(60, 90_000),
    "anthropic": RateLimitConfig(50, 100_000),
    "azure": RateLimitConfig(60, 90_000),
    "gcp": RateLimitConfig(60, 90_000),
    "openrouter": RateLimitConfig(60, 100_000),
    "huggingface": RateLimitConfig(20, 30_000),
    "local": RateLimitConfig(120),
    "custom_http": RateLimitConfig(60, 90_000),
}


def rate_limit_for_config(provider: str, override: dict | None = None) -> RateLimitConfig:
    """Merge a per-config override ({"requests_per_minute", "tokens_per_minute"}) with provider defaults."""
    defaults = DEFAULT_RATE_LIMITS.get(provider.lower(), DEFAULT_RATE_LIMITS["custom_http"])
    override = override or {}
    return RateLimitConfig(
        requests_per_minute=override.get("requests_per_minute", defaults.requests_per_minute),
        tokens_per_minute=override.get("tokens_per_minute", defaults.tokens_per_minute),
    )


@dataclass
class RequestContext:
    source: str = "chat"  # chat | workflow | agent
    workflow_id: str | None = None
    execution_id: str | None = None
    agent_id: str | None = None

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class PendingEntry:
    id: str
    key: str
    context: RequestContext
    added_at: float

    def to_dict(self) -> dict:
        return {"id": self.id, "key": self.key, "context": self.context.to_dict(), "added_at": self.added_at}


@dataclass
class DelayedEntry:
    key: str
    context: RequestContext
    added_at: float
    completed_at: float
    waited_ms: int

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "context": self.context.to_dict(),
            "added_at": self.added_at,
            "completed_at": self.completed_at,
            "waited_ms": self.waited_ms,
        }


@dataclass
class _KeyState:
    request_ts: deque[float] = field(default_factory=deque)
    token_entries: deque[tuple[float, int]] = field(default_factory=deque)


class RateLimiter:
    """In-memory sliding-window limiter per key."""

    def __init__(
        self,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        max_sleep_seconds: float = RATE_LIMIT_MAX_SLEEP_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.window = window_seconds
        self.max_sleep = max_sleep_seconds
        self._clock = clock
        self._sleep = sleep
        self._state: dict[str, _KeyState] = {}
        self._pending: dict[str, PendingEntry] = {}
        self._recent_delayed: deque[DelayedEntry] = deque(maxlen=RECENT_DELAYED_MAX)
        self._ids = itertools.count(1)

    def _get_state(self, key: str) -> _KeyState:
        if key not in self._state:
            self._state[key] = _KeyState()
        return self._state[key]

    def _trim(self, state: _KeyState, now: float):
        cutoff = now - self.window
        while state.request_ts and state.request_ts[0] <= cutoff:
            state.request_ts.popleft()
        while state.token_entries and state.token_entries[0][0] <= cutoff:
            state.token_entries.popleft()

    async def acquire(self, key: str, limits: RateLimitConfig, context: RequestContext | None = None):
        """Wait until a request for `key` fits under `limits`, then count it."""
        ctx = context or RequestContext()
        entry = PendingEntry(id=f"pending-{next(self._ids)}", key=key, context=ctx, added_at=time.time())
        self._pending[entry.id] = entry
        started = self._clock()
        try:
            rpm = limits.requests_per_minute
            tpm = limits.tokens_per_minute
            state = self._get_state(key)

            while True:
                now = self._clock()
                self._trim(state, now)

                at_rpm_limit = rpm > 0 and len(state.request_ts) >= rpm
                token_sum = sum(tokens for _, tokens in state.token_entries)
                at_tpm_limit = bool(tpm) and tpm > 0 and token_sum >= tpm

                if not at_rpm_limit and not at_tpm_limit:
                    state.request_ts.append(now)
                    return

                waits = []
                if at_rpm_limit and state.request_ts:
                    waits.append(state.request_ts[0] + self.window - now)
                if at_tpm_limit and state.token_entries:
                    waits.append(state.token_entries[0][0] + self.window - now)
                wait = max(0.0, min(waits, default=self.max_sleep))
                if wait <= 0:
                    continue
                logger.debug(f"Rate gate '{key}' full (rpm={at_rpm_limit}, tpm={at_tpm_limit}); sleeping {wait:.2f}s")
                await self._sleep(min(wait, self.max_sleep))
        finally:
            self._pending.pop(entry.id, None)
            waited = self._clock() - started
            if waited >= MIN_RECORDED_WAIT:
                self._recent_delayed.append(
                    DelayedEntry(
                        key=key,
                        context=ctx,
                        added_at=entry.added_at,
                        completed_at=time.time(),
                        waited_ms=int(waited * 1000),
                    )
                )
                logger.info(f"Rate gate '{key}' delayed request by {waited:.2f}s")

    def record_tokens(self, key: str, tokens: int):
        """Call after a request completes to record token usage for TPM limiting."""
        if tokens <= 0:
            return
        state = self._get_state(key)
        now = self._clock()
        state.token_entries.append((now, tokens))
        self._trim(state, now)

    def pending(self) -> list[PendingEntry]:
        return list(self._pending.values())

    def recent_delayed(self) -> list[DelayedEntry]:
        return list(self._recent_delayed)


_default_limiter: RateLimiter | None = None


def get_default_rate_limiter() -> RateLimiter:
    global _default_limiter
    if _default_limiter is None:
        _default_limiter = RateLimiter()
    return _default_limiter
