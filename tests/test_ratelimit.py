"""Tests for the fixed-window rate limiter."""
import pytest

from docqa.errors import RateLimitExceeded
from docqa.ratelimit import RateLimiter, client_identifier


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(window_seconds=60, max_requests=3, name="test", clock=clock)


def test_allows_up_to_max_then_denies(limiter):
    """Test that the (N+1)th request in a window is refused."""
    assert [limiter.is_allowed("client") for _ in range(4)] == [True, True, True, False]


def test_denied_requests_are_not_counted(limiter):
    for _ in range(3):
        limiter.is_allowed("client")
    for _ in range(5):
        assert not limiter.is_allowed("client")

    assert limiter._entries["client"].count == 3
    assert limiter.get_remaining_requests("client") == 0


def test_window_expiry_starts_fresh(limiter, clock):
    for _ in range(3):
        limiter.is_allowed("client")
    clock.advance(61)

    assert limiter.is_allowed("client")
    assert limiter.get_remaining_requests("client") == 2


def test_identifiers_are_independent(limiter):
    for _ in range(3):
        limiter.is_allowed("a")
    assert not limiter.is_allowed("a")
    assert limiter.is_allowed("b")


def test_remaining_and_reset_time(limiter, clock):
    assert limiter.get_remaining_requests("new") == 3
    assert limiter.get_reset_time("new") == 0.0

    limiter.is_allowed("new")

    assert limiter.get_remaining_requests("new") == 2
    assert limiter.get_reset_time("new") == clock.now + 60


def test_check_raises_with_reset_time(limiter, clock):
    for _ in range(3):
        limiter.check("client")

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.check("client")

    assert exc_info.value.status_code == 429
    assert exc_info.value.reset_at == clock.now + 60
    assert exc_info.value.to_dict() == {
        "error": "Too many requests. Please try again later.",
        "resetAt": clock.now + 60,
    }


def test_cleanup_drops_only_expired_entries(limiter, clock):
    limiter.is_allowed("old")
    clock.advance(45)
    limiter.is_allowed("recent")
    clock.advance(30)

    assert limiter.cleanup() == 1
    assert len(limiter) == 1
    assert limiter.get_remaining_requests("recent") == 2


async def test_background_cleanup_starts_and_stops(clock):
    limiter = RateLimiter(60, 3, cleanup_interval=3600, clock=clock)

    limiter.start()
    assert limiter._cleanup_task is not None

    await limiter.stop()
    assert limiter._cleanup_task is None


def test_invalid_limits_rejected():
    with pytest.raises(ValueError):
        RateLimiter(window_seconds=0, max_requests=1)


def test_client_identifier_prefers_forwarded_for():
    headers = {"X-Forwarded-For": "10.0.0.1, 10.0.0.2", "User-Agent": "x" * 80}

    assert client_identifier(headers, "127.0.0.1") == "10.0.0.1-" + "x" * 50


def test_client_identifier_fallbacks():
    assert client_identifier({}, "192.168.1.5") == "192.168.1.5-unknown"
    assert client_identifier({}) == "localhost-unknown"
