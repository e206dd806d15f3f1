import threading

import pytest

from errors import RateLimitError
from rate_limiter import RateLimiter
from store import RATE_LIMITS


@pytest.fixture()
def limiter(store, clock):
    return RateLimiter(store, clock=clock)


def test_allows_up_to_limit_then_rejects(limiter, clock):
    for i in range(10):
        result = limiter.check("agent-1", "signal")
        assert result == {"allowed": True, "current": i + 1, "limit": 10}

    clock.advance(600)
    with pytest.raises(RateLimitError) as exc:
        limiter.check("agent-1", "signal")

    err = exc.value
    assert err.reset_in_seconds == 3000
    assert err.to_dict() == {
        "error": "Rate limit exceeded",
        "reset_in_seconds": 3000,
        "message": "Max 10 signals per hour",
        "current": 10,
        "limit": 10,
    }


def test_window_resets_only_after_it_has_fully_elapsed(limiter, clock):
    for _ in range(5):
        limiter.check("agent-1", "claim")

    clock.advance(3600)
    with pytest.raises(RateLimitError):
        limiter.check("agent-1", "claim")

    clock.advance(1)
    assert limiter.check("agent-1", "claim")["current"] == 1


def test_actions_and_agents_have_separate_windows(limiter, store):
    for _ in range(5):
        limiter.check("agent-1", "claim")

    assert limiter.check("agent-1", "signal")["current"] == 1
    assert limiter.check("agent-2", "claim")["current"] == 1
    assert set(store.load(RATE_LIMITS)) == {"agent-1:claim", "agent-1:signal", "agent-2:claim"}


def test_rejected_check_does_not_consume_a_slot(limiter, store):
    for _ in range(5):
        limiter.check("agent-1", "claim")
    for _ in range(3):
        with pytest.raises(RateLimitError):
            limiter.check("agent-1", "claim")

    assert store.load(RATE_LIMITS)["agent-1:claim"]["count"] == 5


def test_custom_limits_override_defaults(store, clock):
    limiter = RateLimiter(store, clock=clock, limits={"task": (2, 60)})
    limiter.check("agent-1", "task")
    limiter.check("agent-1", "task")

    with pytest.raises(RateLimitError) as exc:
        limiter.check("agent-1", "task")
    assert exc.value.extra["message"] == "Max 2 tasks per minute"


def test_concurrent_checks_never_exceed_the_limit(limiter, store):
    allowed = []
    rejected = []
    lock = threading.Lock()

    def worker():
        try:
            limiter.check("agent-1", "signal")
        except RateLimitError:
            with lock:
                rejected.append(1)
        else:
            with lock:
                allowed.append(1)

    threads = [threading.Thread(target=worker) for _ in range(30)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert len(allowed) == 10
    assert len(rejected) == 20
    assert store.load(RATE_LIMITS)["agent-1:signal"]["count"] == 10
