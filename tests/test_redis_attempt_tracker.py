from datetime import datetime, timedelta, timezone

import pytest

from auth_gateway.infrastructure.rate_limit.redis_attempt_tracker import RedisAttemptTracker

PHONE = "+639123456789"


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_tracker(clock=None):
    fakeredis = pytest.importorskip("fakeredis")
    client = fakeredis.FakeRedis(decode_responses=True)
    return RedisAttemptTracker(client=client, clock=clock or FakeClock())


def test_requires_url_without_client():
    with pytest.raises(RuntimeError):
        RedisAttemptTracker(url=None)


def test_blocks_after_max_attempts_and_recovers():
    clock = FakeClock()
    tracker = make_tracker(clock)
    for _ in range(3):
        assert tracker.check_allowed(PHONE).allowed
        tracker.record_attempt(PHONE)

    decision = tracker.check_allowed(PHONE)
    assert decision.allowed is False
    assert decision.wait_minutes == 60

    clock.advance(minutes=61)
    assert tracker.check_allowed(PHONE).allowed is True
    assert tracker.client.exists(tracker._key(PHONE)) == 0


def test_record_is_stored_with_retention_ttl():
    tracker = make_tracker()
    tracker.record_attempt(PHONE)

    key = tracker._key(PHONE)
    data = tracker.client.hgetall(key)
    assert data["attempt_count"] == "1"
    assert data["blocked_until"] == ""
    assert 0 < tracker.client.ttl(key) <= 24 * 3600


def test_clear_deletes_record():
    tracker = make_tracker()
    tracker.record_attempt(PHONE)
    tracker.clear(PHONE)
    assert tracker.client.exists(tracker._key(PHONE)) == 0
    assert tracker.check_allowed(PHONE).allowed


def test_reserve_and_settle():
    tracker = make_tracker()
    for _ in range(3):
        assert tracker.reserve(PHONE).allowed
    assert tracker.reserve(PHONE).allowed is False

    tracker.settle(PHONE, counted=False)
    tracker.settle(PHONE, counted=False)
    tracker.settle(PHONE, counted=True)

    data = tracker.client.hgetall(tracker._key(PHONE))
    assert data["in_flight"] == "0"
    assert data["attempt_count"] == "1"


def test_sweep_leaves_eviction_to_key_expiry():
    tracker = make_tracker()
    tracker.record_attempt(PHONE)
    assert tracker.sweep() == 0


def test_abandoned_reservations_are_released():
    clock = FakeClock()
    tracker = make_tracker(clock)
    for _ in range(3):
        assert tracker.reserve(PHONE).allowed
    clock.advance(hours=30)

    assert tracker.reserve(PHONE).allowed is True
    data = tracker.client.hgetall(tracker._key(PHONE))
    assert data["in_flight"] == "1"
    assert data["reserved_at"] == clock.now.isoformat()


def test_denied_reserve_leaves_ttl_alone():
    tracker = make_tracker()
    for _ in range(3):
        tracker.reserve(PHONE)
    key = tracker._key(PHONE)
    tracker.client.expire(key, 100)

    assert tracker.reserve(PHONE).allowed is False
    assert 0 < tracker.client.ttl(key) <= 100


def test_denied_check_while_blocked_leaves_ttl_alone():
    tracker = make_tracker()
    for _ in range(3):
        tracker.record_attempt(PHONE)
    key = tracker._key(PHONE)
    tracker.client.expire(key, 100)

    assert tracker.check_allowed(PHONE).allowed is False
    assert 0 < tracker.client.ttl(key) <= 100


def test_reservation_without_timestamp_falls_back_to_last_attempt():
    clock = FakeClock()
    tracker = make_tracker(clock)
    tracker.client.hset(tracker._key(PHONE), mapping={
        "attempt_count": 0,
        "in_flight": 3,
        "last_attempt_at": clock.now.isoformat(),
        "blocked_until": "",
    })
    assert tracker.reserve(PHONE).allowed is False

    clock.advance(minutes=2)
    assert tracker.reserve(PHONE).allowed is True
