"""
Adaptive per-channel pacing.

One limiter instance per channel; nothing here is shared between channels.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..config import UploadConfig

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class RateLimiterState:
    """Mutable pacing state owned by a single limiter."""
    current_delay: float
    consecutive_quota_errors: int = 0
    transfers_started: int = 0


class AdaptiveRateLimiter:
    """
    Paces transfers and backs off on quota signals.

    - before_transfer(): sleeps current_delay before every file but the first
    - record_success(): resets the quota counter and decays the delay toward floor
    - record_quota_error(): doubles the delay (bounded) and sleeps the long backoff
    """

    def __init__(
        self,
        floor: float = 1.0,
        ceiling: float = 60.0,
        initial_delay: Optional[float] = None,
        decay: float = 0.9,
        quota_min_wait: float = 10.0,
        sleep: Sleeper = asyncio.sleep,
    ):
        if floor <= 0 or ceiling < floor:
            raise ValueError("floor must be positive and not above ceiling")
        self._floor = floor
        self._ceiling = ceiling
        self._decay = decay
        self._quota_min_wait = quota_min_wait
        self._sleep = sleep
        start = floor if initial_delay is None else min(ceiling, max(floor, initial_delay))
        self.state = RateLimiterState(current_delay=start)

    @classmethod
    def from_config(cls, config: UploadConfig, sleep: Sleeper = asyncio.sleep) -> "AdaptiveRateLimiter":
        return cls(
            floor=config.rate_floor,
            ceiling=config.rate_ceiling,
            initial_delay=config.initial_delay,
            decay=config.rate_decay,
            quota_min_wait=config.quota_min_wait,
            sleep=sleep,
        )

    @property
    def current_delay(self) -> float:
        return self.state.current_delay

    @property
    def consecutive_quota_errors(self) -> int:
        return self.state.consecutive_quota_errors

    async def before_transfer(self) -> None:
        if self.state.transfers_started > 0:
            await self._sleep(self.state.current_delay)
        self.state.transfers_started += 1

    def record_success(self) -> None:
        self.state.consecutive_quota_errors = 0
        self.state.current_delay = max(self._floor, self.state.current_delay * self._decay)

    async def record_quota_error(self) -> float:
        """Escalate the delay and sleep before the same file is retried.

        Returns:
            Seconds slept.
        """
        self.state.consecutive_quota_errors += 1
        self.state.current_delay = min(
            self._ceiling,
            max(2 * self._floor, self.state.current_delay * 2),
        )
        wait = max(self._quota_min_wait, self.state.current_delay)
        logger.warning(
            "Quota signal #%d - delay now %.1fs, waiting %.1fs before retry",
            self.state.consecutive_quota_errors,
            self.state.current_delay,
            wait,
        )
        await self._sleep(wait)
        return wait
