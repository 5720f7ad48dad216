from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

import redis

from ...application.ports.attempt_tracker import AttemptTracker, RateLimitDecision
from ...application.services.attempt_policy import AttemptPolicy, VerificationAttempt, utcnow


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class RedisAttemptTracker(AttemptTracker):
    """Attempt store shared by several worker processes.

    One hash per phone; every read-modify-write runs under a per-phone Redis
    lock. Keys expire after the retention window, so ``sweep`` has nothing to do.
    A check that changes nothing leaves the key and its TTL alone.
    """

    def __init__(self, url: Optional[str] = None, policy: Optional[AttemptPolicy] = None,
                 prefix: str = "otp:attempts:", clock: Callable[[], datetime] = utcnow,
                 client: Optional["redis.Redis"] = None, lock_timeout: float = 5.0) -> None:
        if client is None:
            if not url:
                raise RuntimeError("REDIS_URL is required for the redis attempt store")
            client = redis.Redis.from_url(url, decode_responses=True)
        self.client = client
        self.policy = policy or AttemptPolicy()
        self.prefix = prefix
        self._clock = clock
        self._lock_timeout = lock_timeout

    def _key(self, phone: str) -> str:
        return f"{self.prefix}{phone}"

    def _lock(self, phone: str):
        return self.client.lock(f"{self.prefix}lock:{phone}", timeout=self._lock_timeout,
                                blocking_timeout=self._lock_timeout)

    def _load(self, phone: str) -> Optional[VerificationAttempt]:
        data = self.client.hgetall(self._key(phone))
        if not data:
            return None
        last_attempt_at = datetime.fromisoformat(data["last_attempt_at"])
        in_flight = int(data.get("in_flight", 0))
        reserved_at = _parse_time(data.get("reserved_at"))
        if in_flight and reserved_at is None:
            reserved_at = last_attempt_at
        return VerificationAttempt(
            phone=phone,
            attempt_count=int(data.get("attempt_count", 0)),
            in_flight=in_flight,
            last_attempt_at=last_attempt_at,
            blocked_until=_parse_time(data.get("blocked_until")),
            reserved_at=reserved_at,
        )

    def _save(self, phone: str, record: Optional[VerificationAttempt]) -> None:
        key = self._key(phone)
        pipe = self.client.pipeline()
        pipe.delete(key)
        if record is not None:
            pipe.hset(key, mapping={
                "attempt_count": record.attempt_count,
                "in_flight": record.in_flight,
                "last_attempt_at": record.last_attempt_at.isoformat(),
                "blocked_until": record.blocked_until.isoformat() if record.blocked_until else "",
                "reserved_at": record.reserved_at.isoformat() if record.reserved_at else "",
            })
            pipe.expire(key, int(self.policy.retention.total_seconds()))
        pipe.execute()

    def _decide(self, phone: str, step) -> RateLimitDecision:
        with self._lock(phone):
            current = self._load(phone)
            before = replace(current) if current is not None else None
            decision, record = step(current, self._clock())
            if record != before:
                self._save(phone, record)
            return decision

    def check_allowed(self, phone: str) -> RateLimitDecision:
        return self._decide(phone, self.policy.check)

    def record_attempt(self, phone: str) -> None:
        with self._lock(phone):
            self._save(phone, self.policy.record(self._load(phone), phone, self._clock()))

    def clear(self, phone: str) -> None:
        with self._lock(phone):
            self.client.delete(self._key(phone))

    def reserve(self, phone: str) -> RateLimitDecision:
        return self._decide(phone, lambda record, now: self.policy.reserve(record, phone, now))

    def settle(self, phone: str, counted: bool) -> None:
        with self._lock(phone):
            self._save(phone, self.policy.settle(self._load(phone), phone, counted, self._clock()))

    def sweep(self) -> int:
        return 0
