"""Tests for AdaptiveRateLimiter."""
import pytest

from wauploader.config import UploadConfig
from wauploader.services.rate_limiter import AdaptiveRateLimiter


@pytest.mark.asyncio
async def test_first_transfer_not_delayed(sleeper):
    limiter = AdaptiveRateLimiter(initial_delay=1.5, sleep=sleeper)

    await limiter.before_transfer()
    assert sleeper.calls == []

    await limiter.before_transfer()
    assert sleeper.calls == [1.5]
    assert limiter.state.transfers_started == 2


@pytest.mark.asyncio
async def test_quota_escalation_is_monotonic_and_bounded(sleeper):
    limiter = AdaptiveRateLimiter(floor=1.0, ceiling=60.0, initial_delay=1.5, sleep=sleeper)

    delays = []
    for _ in range(8):
        await limiter.record_quota_error()
        delays.append(limiter.current_delay)

    assert delays[:3] == [3.0, 6.0, 12.0]
    assert delays == sorted(delays)
    assert max(delays) == 60.0
    assert limiter.consecutive_quota_errors == 8
    # long path never waits less than the quota minimum
    assert all(wait >= 10.0 for wait in sleeper.calls)
    assert sleeper.calls[-1] == 60.0


@pytest.mark.asyncio
async def test_quota_from_floor_doubles_floor(sleeper):
    limiter = AdaptiveRateLimiter(floor=1.0, initial_delay=1.0, sleep=sleeper)
    wait = await limiter.record_quota_error()
    assert limiter.current_delay == 2.0
    assert wait == 10.0


@pytest.mark.asyncio
async def test_success_decays_toward_floor(sleeper):
    limiter = AdaptiveRateLimiter(floor=1.0, initial_delay=1.5, sleep=sleeper)
    await limiter.record_quota_error()
    assert limiter.current_delay == 3.0

    limiter.record_success()
    assert limiter.consecutive_quota_errors == 0
    assert limiter.current_delay == pytest.approx(2.7)

    for _ in range(50):
        limiter.record_success()
    assert limiter.current_delay == 1.0


def test_delay_only_decays_after_success():
    limiter = AdaptiveRateLimiter(initial_delay=5.0)
    assert limiter.current_delay == 5.0
    limiter.record_success()
    assert limiter.current_delay == pytest.approx(4.5)


def test_from_config(sleeper):
    config = UploadConfig(rate_floor=2.0, rate_ceiling=20.0, rate_initial_delay=4.0, quota_min_wait=3.0)
    limiter = AdaptiveRateLimiter.from_config(config, sleep=sleeper)
    assert limiter.current_delay == 4.0


def test_invalid_bounds():
    with pytest.raises(ValueError):
        AdaptiveRateLimiter(floor=5.0, ceiling=1.0)
