"""
Tests for the fixed-window rate limiter and the in-memory store
"""
import threading
from datetime import timedelta

import pytest

from smsauth.core.clock import FrozenClock
from smsauth.core.exceptions import StoreUnavailable
from smsauth.services.auth.rate_limit import (
    PURPOSE_SEND_CODE,
    PURPOSE_VERIFY,
    SCOPE_IP,
    SCOPE_PHONE,
    RateLimiter,
    RateLimitKey,
    RateLimitPolicy,
    apply_hit,
)
from smsauth.services.auth.window_store import InMemoryWindowStore, WindowStore

IP_KEY = RateLimitKey(PURPOSE_SEND_CODE, SCOPE_IP, "203.0.113.7")
PHONE_KEY = RateLimitKey(PURPOSE_SEND_CODE, SCOPE_PHONE, "+15155551234")


class BrokenStore(WindowStore):
    def hit(self, key, policy, now):
        raise StoreUnavailable("connection refused")

    def get(self, key):
        raise StoreUnavailable("connection refused")


@pytest.fixture
def limiter(clock):
    return RateLimiter(InMemoryWindowStore(sweep_probability=0), clock=clock)


def test_policy_validation():
    with pytest.raises(ValueError):
        RateLimitPolicy(max_attempts=0, window=timedelta(minutes=1))
    with pytest.raises(ValueError):
        RateLimitPolicy(max_attempts=1, window=timedelta(0))


def test_admits_up_to_max_then_denies(limiter, clock):
    policy = RateLimitPolicy.per_seconds(3, 3600)
    start = clock.now()

    remaining = [limiter.check(PHONE_KEY, policy).remaining for _ in range(3)]
    assert remaining == [2, 1, 0]

    denied = limiter.check(PHONE_KEY, policy)
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset_at == start + timedelta(hours=1)
    assert denied.retry_after_seconds(clock.now()) == 3600


def test_denials_do_not_extend_window(limiter, clock):
    policy = RateLimitPolicy.per_seconds(1, 60)
    first = limiter.check(PHONE_KEY, policy)

    clock.advance(seconds=30)
    denied = limiter.check(PHONE_KEY, policy)
    assert denied.allowed is False
    assert denied.reset_at == first.reset_at
    assert denied.retry_after_seconds(clock.now()) == 30


def test_window_resets_exactly_at_reset_at(limiter, clock):
    policy = RateLimitPolicy.per_seconds(2, 900)
    limiter.check(IP_KEY, policy)
    limiter.check(IP_KEY, policy)

    clock.advance(seconds=899)
    assert limiter.check(IP_KEY, policy).allowed is False

    clock.advance(seconds=1)
    fresh = limiter.check(IP_KEY, policy)
    assert fresh.allowed is True
    assert fresh.remaining == 1
    assert fresh.reset_at == clock.now() + timedelta(seconds=900)


def test_keys_are_independent(limiter):
    policy = RateLimitPolicy.per_seconds(1, 60)
    assert limiter.check(IP_KEY, policy).allowed is True
    assert limiter.check(PHONE_KEY, policy).allowed is True
    assert limiter.check(RateLimitKey(PURPOSE_VERIFY, SCOPE_IP, "203.0.113.7"), policy).allowed is True
    assert limiter.check(IP_KEY, policy).allowed is False


def test_check_all_stops_at_first_denial(limiter):
    ip_policy = RateLimitPolicy.per_seconds(1, 60)
    phone_policy = RateLimitPolicy.per_seconds(5, 60)
    limiter.check_all([(IP_KEY, ip_policy), (PHONE_KEY, phone_policy)])

    denied = limiter.check_all([(IP_KEY, ip_policy), (PHONE_KEY, phone_policy)])
    assert denied.allowed is False
    assert denied.key == IP_KEY
    # Phone slot was not consumed by the denied request
    assert limiter.peek(PHONE_KEY, phone_policy).remaining == 4


def test_check_all_requires_a_policy(limiter):
    with pytest.raises(ValueError):
        limiter.check_all([])


def test_five_sends_from_one_ip_then_sixth_denied(limiter, clock):
    """Different phones, same IP: the IP policy caps at five per 15 minutes."""
    start = clock.now()
    ip_policy = RateLimitPolicy.per_seconds(5, 900)
    phone_policy = RateLimitPolicy.per_seconds(3, 3600)

    for i in range(5):
        phone_key = RateLimitKey(PURPOSE_SEND_CODE, SCOPE_PHONE, f"+1515555000{i}")
        assert limiter.check_all([(IP_KEY, ip_policy), (phone_key, phone_policy)]).allowed is True
        clock.advance(minutes=1)

    phone_key = RateLimitKey(PURPOSE_SEND_CODE, SCOPE_PHONE, "+15155550009")
    result = limiter.check_all([(IP_KEY, ip_policy), (phone_key, phone_policy)])
    assert result.allowed is False
    assert result.key.scope == SCOPE_IP
    assert result.reset_at == start + timedelta(minutes=15)
    assert result.retry_after_seconds(clock.now()) == 10 * 60


def test_fails_closed_when_store_unavailable(clock):
    limiter = RateLimiter(BrokenStore(), clock=clock)
    policy = RateLimitPolicy.per_seconds(5, 900)

    result = limiter.check(IP_KEY, policy)
    assert result.allowed is False
    assert result.degraded is True
    assert result.remaining == 0
    assert result.reset_at == clock.now() + timedelta(seconds=900)


def test_peek_fails_closed_when_store_unavailable(clock):
    limiter = RateLimiter(BrokenStore(), clock=clock)
    policy = RateLimitPolicy.per_seconds(5, 900)

    result = limiter.peek(IP_KEY, policy)
    assert result.allowed is False
    assert result.degraded is True
    assert result.remaining == 0
    assert result.key == IP_KEY


def test_concurrent_hits_admit_exactly_max():
    store = InMemoryWindowStore(sweep_probability=0)
    limiter = RateLimiter(store, clock=FrozenClock())
    policy = RateLimitPolicy.per_seconds(10, 60)
    results = []
    results_lock = threading.Lock()
    barrier = threading.Barrier(50)

    def worker():
        barrier.wait()
        result = limiter.check(IP_KEY, policy)
        with results_lock:
            results.append(result.allowed)

    threads = [threading.Thread(target=worker) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 10
    assert store.get(IP_KEY).count == 10


def test_peek_and_reset(limiter):
    policy = RateLimitPolicy.per_seconds(2, 60)
    assert limiter.peek(IP_KEY, policy).remaining == 2
    limiter.check(IP_KEY, policy)
    assert limiter.peek(IP_KEY, policy).remaining == 1

    limiter.store.reset(IP_KEY)
    assert limiter.peek(IP_KEY, policy).remaining == 2


def test_apply_hit_leaves_capped_window_unchanged(clock):
    policy = RateLimitPolicy.per_seconds(1, 60)
    window, admitted = apply_hit(None, policy, clock.now())
    assert admitted is True

    same, admitted = apply_hit(window, policy, clock.now())
    assert admitted is False
    assert same is window


def test_sweep_only_removes_stale_windows(clock):
    store = InMemoryWindowStore(sweep_probability=0)
    limiter = RateLimiter(store, clock=clock)
    policy = RateLimitPolicy.per_seconds(1, 60)
    limiter.check(IP_KEY, policy)

    # Expired but not yet one full window past expiry
    clock.advance(seconds=90)
    assert store.sweep(clock.now()) == 0
    assert len(store) == 1

    clock.advance(seconds=30)
    assert store.sweep(clock.now()) == 1
    assert len(store) == 0


def test_probabilistic_sweep_runs_on_hit(clock):
    store = InMemoryWindowStore(sweep_probability=0.01, rng=lambda: 0.0)
    limiter = RateLimiter(store, clock=clock)
    policy = RateLimitPolicy.per_seconds(1, 60)
    limiter.check(IP_KEY, policy)

    clock.advance(minutes=5)
    limiter.check(PHONE_KEY, policy)
    assert store.get(IP_KEY) is None
    assert len(store) == 1
