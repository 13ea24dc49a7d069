"""Unit tests for the escalating backoff rate limiter."""

import pytest

from conftest import FakeClock
from sos_relay.adapters.rate_limit.base import RateEntry
from sos_relay.adapters.rate_limit.escalating import BackoffConfig, RateLimiterEntity
from sos_relay.adapters.storage.in_memory import InMemoryKeyValueStore
from sos_relay.core.actors import ScopedStorage
from sos_relay.core.config import RateLimitSettings
from sos_relay.schemas.rate import RateCheckResponse


@pytest.fixture
def limiter(store: InMemoryKeyValueStore, clock: FakeClock) -> RateLimiterEntity:
    return RateLimiterEntity(ScopedStorage(store, "rate:global:"), BackoffConfig(), clock=clock)


@pytest.mark.asyncio
async def test_escalation_sequence(limiter: RateLimiterEntity, clock: FakeClock) -> None:
    first = await limiter.check("1.2.3.4")
    assert first.allowed is True
    assert first.retry_after_seconds == 0
    assert (await limiter.get_entry("1.2.3.4")).count == 1

    denied = await limiter.check("1.2.3.4")
    assert denied.allowed is False
    assert denied.retry_after_seconds == 10

    clock.advance(10)
    second = await limiter.check("1.2.3.4")
    assert second.allowed is True
    assert (await limiter.get_entry("1.2.3.4")).count == 2

    denied = await limiter.check("1.2.3.4")
    assert denied.allowed is False
    assert denied.retry_after_seconds == 30


@pytest.mark.asyncio
async def test_retry_after_rounds_up(limiter: RateLimiterEntity, clock: FakeClock) -> None:
    await limiter.check("addr")
    clock.advance(4.2)

    denied = await limiter.check("addr")

    assert denied.retry_after_seconds == 6


@pytest.mark.asyncio
async def test_denied_attempt_does_not_advance_state(limiter: RateLimiterEntity, clock: FakeClock) -> None:
    await limiter.check("addr")
    before = await limiter.get_entry("addr")

    for _ in range(5):
        clock.advance(1)
        assert (await limiter.check("addr")).allowed is False

    assert await limiter.get_entry("addr") == before
    clock.advance(5)
    assert (await limiter.check("addr")).allowed is True


@pytest.mark.asyncio
async def test_delay_is_capped_at_last_table_entry(limiter: RateLimiterEntity, clock: FakeClock) -> None:
    await limiter.check("addr")
    for delay in (10, 30, 60, 180, 300, 300, 300):
        denied = await limiter.check("addr")
        assert denied.retry_after_seconds == delay
        clock.advance(delay)
        assert (await limiter.check("addr")).allowed is True

    assert (await limiter.get_entry("addr")).count == 8


@pytest.mark.asyncio
async def test_cooldown_resets_count(limiter: RateLimiterEntity, store: InMemoryKeyValueStore, clock: FakeClock) -> None:
    await store.put("rate:global:ip:addr", RateEntry(count=5, last_attempt=clock()).model_dump())

    clock.advance(1801)
    result = await limiter.check("addr")

    assert result.allowed is True
    assert result.attempts == 1
    assert (await limiter.get_entry("addr")).count == 1


@pytest.mark.asyncio
async def test_cooldown_boundary_is_exclusive(limiter: RateLimiterEntity, store: InMemoryKeyValueStore, clock: FakeClock) -> None:
    await store.put("rate:global:ip:addr", RateEntry(count=5, last_attempt=clock()).model_dump())

    clock.advance(1800)
    result = await limiter.check("addr")

    # Exactly at the cooldown the escalation still applies (300s already elapsed).
    assert result.allowed is True
    assert result.attempts == 6


@pytest.mark.asyncio
async def test_reset_returns_address_to_first_use(limiter: RateLimiterEntity) -> None:
    await limiter.check("addr")
    assert (await limiter.check("addr")).allowed is False

    await limiter.reset("addr")

    assert await limiter.get_entry("addr") is None
    result = await limiter.check("addr")
    assert result.allowed is True
    assert result.attempts == 1


@pytest.mark.asyncio
async def test_addresses_are_isolated(limiter: RateLimiterEntity) -> None:
    assert (await limiter.check("a")).allowed is True
    assert (await limiter.check("a")).allowed is False

    assert (await limiter.check("b")).allowed is True


@pytest.mark.asyncio
async def test_empty_address_is_tracked_as_unknown(limiter: RateLimiterEntity, store: InMemoryKeyValueStore) -> None:
    await limiter.check("")

    assert await store.keys() == ["rate:global:ip:unknown"]


@pytest.mark.asyncio
async def test_sweep_removes_only_cooled_down_entries(limiter: RateLimiterEntity, clock: FakeClock) -> None:
    await limiter.check("old")
    clock.advance(1000)
    await limiter.check("recent")
    clock.advance(801)

    assert await limiter.sweep() == 1
    assert await limiter.get_entry("old") is None
    assert await limiter.get_entry("recent") is not None


@pytest.mark.asyncio
async def test_custom_table(store: InMemoryKeyValueStore, clock: FakeClock) -> None:
    limiter = RateLimiterEntity(
        ScopedStorage(store, "rate:global:"),
        BackoffConfig(cooldown_seconds=60, delays_seconds=(0, 2)),
        clock=clock,
    )

    await limiter.check("addr")
    assert (await limiter.check("addr")).retry_after_seconds == 2
    clock.advance(2)
    await limiter.check("addr")
    assert (await limiter.check("addr")).retry_after_seconds == 2


def test_config_from_settings() -> None:
    cfg = BackoffConfig.from_settings(
        RateLimitSettings(cooldown_seconds=900, delays_seconds=[0, 5])
    )

    assert cfg.cooldown_seconds == 900
    assert cfg.delays_seconds == (0, 5)
    assert cfg.required_delay(7) == 5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"cooldown_seconds": 0},
        {"delays_seconds": ()},
    ],
)
def test_invalid_config(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        BackoffConfig(**kwargs)


@pytest.mark.asyncio
async def test_wire_response(limiter: RateLimiterEntity) -> None:
    await limiter.check("addr")
    denied = RateCheckResponse.from_result(await limiter.check("addr"))

    assert denied.model_dump() == {"allowed": False, "retry_after": 10}
