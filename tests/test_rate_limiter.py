"""Unit tests for the tiered rate limiter."""

import pytest

from conftest import FakeClock, FlakyCacheStore, UnreachableCacheStore, make_degradation

from app.core.config import RateLimitSettings
from app.core.errors import ServiceUnavailableAppError
from app.services.degradation import (
    CacheHealthMonitor,
    DegradationController,
    FailurePolicy,
    GuardedComponent,
)
from app.services.rate_limiter import (
    RateLimiter,
    RateLimitTier,
    TierConfig,
    build_tier_table,
)


def make_limiter(store, clock: FakeClock, overrides: dict | None = None) -> RateLimiter:
    tiers = build_tier_table(RateLimitSettings())
    tiers.update(overrides or {})
    return RateLimiter(store, make_degradation(store, clock), tiers, clock=clock)


def test_tier_table_defaults() -> None:
    tiers = build_tier_table(RateLimitSettings())

    assert set(tiers) == set(RateLimitTier)
    assert tiers[RateLimitTier.DEFAULT] == TierConfig(100, 60, 60)
    assert tiers[RateLimitTier.STRICT] == TierConfig(20, 60, 300)
    assert tiers[RateLimitTier.RELAXED] == TierConfig(200, 60, 60)
    assert tiers[RateLimitTier.LOGIN] == TierConfig(10, 900, 900)
    assert tiers[RateLimitTier.SIGNUP] == TierConfig(10, 3600, 3600)


def test_tier_key_prefixes() -> None:
    assert RateLimitTier.DEFAULT.key_prefix == "rl_default:"
    assert RateLimitTier.LOGIN.key_prefix == "rl_login:"


def test_missing_tier_configuration_is_rejected(cache_store, clock) -> None:
    tiers = build_tier_table(RateLimitSettings())
    del tiers[RateLimitTier.SIGNUP]

    with pytest.raises(ValueError):
        RateLimiter(cache_store, make_degradation(cache_store, clock), tiers)


@pytest.mark.parametrize(
    "args",
    [(0, 60, 60), (1, 0, 60), (1, 60, 0)],
)
def test_invalid_tier_config(args: tuple) -> None:
    with pytest.raises(ValueError):
        TierConfig(*args)


class TestConsume:
    @pytest.mark.asyncio
    async def test_allows_exactly_points_then_denies(self, cache_store, clock) -> None:
        limiter = make_limiter(cache_store, clock)

        remaining = []
        for _ in range(100):
            result = await limiter.consume(RateLimitTier.DEFAULT, "ip:1.2.3.4")
            assert result.allowed is True
            remaining.append(result.remaining)

        assert remaining == list(range(99, -1, -1))

        denied = await limiter.consume(RateLimitTier.DEFAULT, "ip:1.2.3.4")
        assert denied.allowed is False
        assert denied.remaining == 0
        assert 0 < denied.retry_after_seconds <= 60

    @pytest.mark.asyncio
    async def test_penalty_outlasts_window(self, cache_store, clock) -> None:
        limiter = make_limiter(
            cache_store, clock, {RateLimitTier.STRICT: TierConfig(2, 10, 120)}
        )

        for _ in range(2):
            assert (await limiter.consume(RateLimitTier.STRICT, "k")).allowed is True
        assert (await limiter.consume(RateLimitTier.STRICT, "k")).allowed is False

        # Window is over but the penalty still holds
        clock.advance(30)
        blocked = await limiter.consume(RateLimitTier.STRICT, "k")
        assert blocked.allowed is False
        assert blocked.retry_after_seconds == 90

        clock.advance(90)
        assert (await limiter.consume(RateLimitTier.STRICT, "k")).allowed is True

    @pytest.mark.asyncio
    async def test_retry_after_never_exceeds_block_duration(self, cache_store, clock) -> None:
        limiter = make_limiter(cache_store, clock, {RateLimitTier.LOGIN: TierConfig(1, 900, 900)})

        await limiter.consume(RateLimitTier.LOGIN, "k")
        for _ in range(5):
            result = await limiter.consume(RateLimitTier.LOGIN, "k")
            assert result.allowed is False
            assert result.retry_after_seconds <= 900

    @pytest.mark.asyncio
    async def test_window_resets_quota(self, cache_store, clock) -> None:
        limiter = make_limiter(
            cache_store, clock, {RateLimitTier.RELAXED: TierConfig(3, 60, 60)}
        )

        for _ in range(3):
            await limiter.consume(RateLimitTier.RELAXED, "k")

        clock.advance(60)
        result = await limiter.consume(RateLimitTier.RELAXED, "k")
        assert result.allowed is True
        assert result.remaining == 2

    @pytest.mark.asyncio
    async def test_keys_and_tiers_are_isolated(self, cache_store, clock) -> None:
        limiter = make_limiter(cache_store, clock, {RateLimitTier.STRICT: TierConfig(1, 60, 60)})

        assert (await limiter.consume(RateLimitTier.STRICT, "a")).allowed is True
        assert (await limiter.consume(RateLimitTier.STRICT, "a")).allowed is False
        assert (await limiter.consume(RateLimitTier.STRICT, "b")).allowed is True
        assert (await limiter.consume(RateLimitTier.DEFAULT, "a")).allowed is True

    @pytest.mark.asyncio
    async def test_uses_stable_key_names(self, cache_store, clock) -> None:
        limiter = make_limiter(cache_store, clock, {RateLimitTier.SIGNUP: TierConfig(1, 60, 60)})

        await limiter.consume(RateLimitTier.SIGNUP, "ip:9.9.9.9")
        await limiter.consume(RateLimitTier.SIGNUP, "ip:9.9.9.9")

        assert set(cache_store.keys()) == {
            "rl_signup:ip:9.9.9.9",
            "rl_signup:block:ip:9.9.9.9",
        }

    @pytest.mark.asyncio
    async def test_rejects_empty_key(self, cache_store, clock) -> None:
        limiter = make_limiter(cache_store, clock)

        with pytest.raises(ValueError):
            await limiter.consume(RateLimitTier.DEFAULT, "")


class TestDegradation:
    @pytest.mark.asyncio
    async def test_unreachable_store_fails_closed(self, clock) -> None:
        limiter = make_limiter(UnreachableCacheStore(), clock)

        with pytest.raises(ServiceUnavailableAppError) as exc_info:
            await limiter.consume(RateLimitTier.DEFAULT, "k")

        assert exc_info.value.details["component"] == "rate_limiter"

    @pytest.mark.asyncio
    async def test_outage_mid_flight_fails_closed(self, cache_store: FlakyCacheStore, clock) -> None:
        limiter = make_limiter(cache_store, clock)
        assert (await limiter.consume(RateLimitTier.DEFAULT, "k")).allowed is True

        cache_store.down = True
        for _ in range(3):
            with pytest.raises(ServiceUnavailableAppError):
                await limiter.consume(RateLimitTier.DEFAULT, "k")

    @pytest.mark.asyncio
    async def test_fail_open_policy_allows(self, clock) -> None:
        store = UnreachableCacheStore()
        degradation = DegradationController(
            CacheHealthMonitor(store, clock=clock),
            {GuardedComponent.RATE_LIMITER: FailurePolicy.FAIL_OPEN},
        )
        limiter = RateLimiter(store, degradation, build_tier_table(RateLimitSettings()), clock=clock)

        result = await limiter.consume(RateLimitTier.DEFAULT, "k")
        assert result.allowed is True
