"""ABOUTME: Unit tests for the in-memory rate limit primitives
ABOUTME: Drives the token buckets with a fake clock to check refill, expiry and reset behaviour"""

import threading
from datetime import timedelta

import pytest

from tests.fakes import FakeClock
from warden.service_layer.ratelimit import CountingLimiter, ExpiringTokenBucket, RefillingTokenBucket


class TestCountingLimiter:
    def test_allows_up_to_max(self):
        limiter = CountingLimiter(3)
        assert [limiter.consume("a") for _ in range(3)] == [True, True, True]

    def test_refuses_after_max_and_forgets_the_key(self):
        """The (max+1)th consume fails and the key then behaves as fresh."""
        limiter = CountingLimiter(2)
        limiter.consume("a")
        limiter.consume("a")

        assert limiter.consume("a") is False
        assert limiter.check("a") is True
        assert limiter.consume("a") is True

    def test_check_does_not_consume(self):
        limiter = CountingLimiter(1)
        assert limiter.check("a")
        assert limiter.check("a")
        assert limiter.consume("a")
        assert not limiter.check("a")

    def test_keys_are_independent(self):
        limiter = CountingLimiter(1)
        limiter.consume("a")
        assert limiter.check("b")
        assert limiter.consume("b")

    def test_reset_and_clear(self):
        limiter = CountingLimiter(1)
        limiter.consume("a")
        limiter.consume("b")

        limiter.reset("a")
        assert limiter.check("a")
        assert not limiter.check("b")

        limiter.clear()
        assert limiter.check("b")

    def test_rejects_zero_max(self):
        with pytest.raises(ValueError):
            CountingLimiter(0)


class TestRefillingTokenBucket:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    def test_missing_key_is_a_full_bucket(self, clock):
        bucket = RefillingTokenBucket(3, timedelta(seconds=10), clock=clock)
        assert bucket.check("a")
        assert [bucket.consume("a") for _ in range(4)] == [True, True, True, False]

    def test_one_token_comes_back_per_interval(self, clock):
        bucket = RefillingTokenBucket(2, timedelta(seconds=10), clock=clock)
        bucket.consume("a")
        bucket.consume("a")

        clock.advance(timedelta(seconds=9))
        assert bucket.consume("a") is False

        clock.advance(timedelta(seconds=1))
        assert bucket.consume("a") is True
        assert bucket.consume("a") is False

    def test_refill_is_capped_at_max(self, clock):
        bucket = RefillingTokenBucket(2, timedelta(seconds=10), clock=clock)
        bucket.consume("a")
        bucket.consume("a")

        clock.advance(timedelta(hours=1))
        assert [bucket.consume("a") for _ in range(3)] == [True, True, False]

    def test_consume_with_cost(self, clock):
        bucket = RefillingTokenBucket(3, timedelta(seconds=10), clock=clock)
        assert bucket.consume("a", cost=2)
        assert not bucket.check("a", cost=2)
        assert bucket.consume("a")

    def test_add_token_if_empty(self, clock):
        bucket = RefillingTokenBucket(2, timedelta(minutes=5), clock=clock)
        bucket.consume("a")
        bucket.consume("a")
        assert not bucket.check("a")

        bucket.add_token_if_empty("a")
        assert bucket.consume("a")
        assert not bucket.consume("a")

    def test_add_token_if_empty_leaves_a_non_empty_bucket_alone(self, clock):
        bucket = RefillingTokenBucket(3, timedelta(minutes=5), clock=clock)
        bucket.consume("a")
        bucket.add_token_if_empty("a")
        assert [bucket.consume("a") for _ in range(3)] == [True, True, False]

    def test_reset(self, clock):
        bucket = RefillingTokenBucket(1, timedelta(minutes=5), clock=clock)
        bucket.consume("a")
        bucket.reset("a")
        assert bucket.consume("a")


class TestExpiringTokenBucket:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    def test_drains_within_window(self, clock):
        bucket = ExpiringTokenBucket(3, timedelta(minutes=15), clock=clock)
        assert [bucket.consume("a") for _ in range(4)] == [True, True, True, False]

        clock.advance(timedelta(minutes=14, seconds=59))
        assert bucket.consume("a") is False

    def test_fresh_window_after_expiry(self, clock):
        """After the window passes, consume succeeds and a new window starts at that moment."""
        bucket = ExpiringTokenBucket(2, timedelta(minutes=15), clock=clock)
        bucket.consume("a")
        bucket.consume("a")

        clock.advance(timedelta(minutes=15))
        assert bucket.consume("a") is True

        clock.advance(timedelta(minutes=10))
        assert bucket.consume("a") is True
        assert bucket.consume("a") is False

        clock.advance(timedelta(minutes=5))
        assert bucket.consume("a") is True

    def test_check_does_not_consume(self, clock):
        bucket = ExpiringTokenBucket(1, timedelta(minutes=15), clock=clock)
        assert bucket.check("a")
        assert bucket.check("a")
        bucket.consume("a")
        assert not bucket.check("a")

        clock.advance(timedelta(minutes=15))
        assert bucket.check("a")

    def test_add_token_if_empty_keeps_window(self, clock):
        bucket = ExpiringTokenBucket(1, timedelta(minutes=15), clock=clock)
        bucket.consume("a")

        clock.advance(timedelta(minutes=5))
        bucket.add_token_if_empty("a")
        assert bucket.consume("a")
        assert not bucket.consume("a")

        # the window still ends 15 minutes after the first consume
        clock.advance(timedelta(minutes=10))
        assert bucket.consume("a")

    def test_add_token_if_empty_ignores_unknown_keys(self, clock):
        bucket = ExpiringTokenBucket(2, timedelta(minutes=15), clock=clock)
        bucket.add_token_if_empty("a")
        assert [bucket.consume("a") for _ in range(3)] == [True, True, False]

    def test_cost_larger_than_max_never_passes(self, clock):
        bucket = ExpiringTokenBucket(2, timedelta(minutes=15), clock=clock)
        assert not bucket.consume("a", cost=3)
        assert bucket.consume("a", cost=2)

    def test_reset_and_clear(self, clock):
        bucket = ExpiringTokenBucket(1, timedelta(minutes=15), clock=clock)
        bucket.consume("a")
        bucket.consume("b")

        bucket.reset("a")
        assert bucket.consume("a")

        bucket.clear()
        assert bucket.consume("b")

    def test_concurrent_consumes_never_overspend(self, clock):
        bucket = ExpiringTokenBucket(50, timedelta(minutes=15), clock=clock)
        results: list[bool] = []
        results_lock = threading.Lock()

        def worker():
            for _ in range(20):
                allowed = bucket.consume("shared")
                with results_lock:
                    results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 50
        assert len(results) == 160
