"""State transitions for per-phone OTP attempt records.

Fresh (no record) -> Active (1..max-1 attempts) -> Blocked (>= max, blocked_until
set) -> Fresh again once the block elapses or the last attempt falls out of the
rolling window. These functions only compute; the trackers own storage and
locking and call them inside their critical sections. A ``None`` record returned
from any of them means "delete".
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from ..ports.attempt_tracker import RateLimitDecision


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VerificationAttempt:
    phone: str
    last_attempt_at: datetime
    attempt_count: int = 0
    blocked_until: Optional[datetime] = None
    in_flight: int = 0
    # Time of the most recent reservation still in flight
    reserved_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.attempt_count == 0 and self.in_flight == 0


@dataclass(frozen=True)
class AttemptPolicy:
    max_attempts: int = 3
    block_duration: timedelta = field(default_factory=lambda: timedelta(minutes=60))
    retention: timedelta = field(default_factory=lambda: timedelta(hours=24))
    # Longest a provider call may hold a slot; a worker that dies before
    # settling leaks its slots until then.
    reservation_timeout: timedelta = field(default_factory=lambda: timedelta(seconds=60))

    def reservation_expired(self, record: VerificationAttempt, now: datetime) -> bool:
        return (record.in_flight > 0 and record.reserved_at is not None
                and now - record.reserved_at > self.reservation_timeout)

    def release_expired(self, record: Optional[VerificationAttempt], now: datetime) -> Optional[VerificationAttempt]:
        if record is None or not self.reservation_expired(record, now):
            return record
        record.in_flight = 0
        record.reserved_at = None
        return None if record.is_empty else record

    def evaluate(self, record: Optional[VerificationAttempt], now: datetime) -> Tuple[RateLimitDecision, bool]:
        """Return the decision and whether the record's history has expired."""
        if record is None:
            return RateLimitDecision(allowed=True), False

        if record.blocked_until is not None:
            if now < record.blocked_until:
                wait = math.ceil((record.blocked_until - now).total_seconds())
                return RateLimitDecision(allowed=False, wait_seconds=wait), False
            return RateLimitDecision(allowed=True), True

        # Rolling window: measured from the most recent attempt, per phone.
        if record.attempt_count > 0 and now - record.last_attempt_at > self.block_duration:
            return RateLimitDecision(allowed=True), True

        return RateLimitDecision(allowed=True), False

    def expire(self, record: VerificationAttempt) -> Optional[VerificationAttempt]:
        # Slots held by in-flight provider calls survive the reset.
        if record.in_flight == 0:
            return None
        record.attempt_count = 0
        record.blocked_until = None
        return record

    def check(self, record: Optional[VerificationAttempt], now: datetime) -> Tuple[RateLimitDecision, Optional[VerificationAttempt]]:
        record = self.release_expired(record, now)
        decision, expired = self.evaluate(record, now)
        if expired:
            record = self.expire(record)
        return decision, record

    def reserve(self, record: Optional[VerificationAttempt], phone: str, now: datetime) -> Tuple[RateLimitDecision, Optional[VerificationAttempt]]:
        decision, record = self.check(record, now)
        if not decision.allowed:
            return decision, record
        if record is None:
            record = VerificationAttempt(phone=phone, last_attempt_at=now)
        if record.attempt_count + record.in_flight >= self.max_attempts:
            # Calls still in flight already hold the remaining budget.
            wait = int(self.block_duration.total_seconds())
            return RateLimitDecision(allowed=False, wait_seconds=wait), record
        record.in_flight += 1
        record.reserved_at = now
        return decision, record

    def record(self, record: Optional[VerificationAttempt], phone: str, now: datetime) -> VerificationAttempt:
        if record is None:
            record = VerificationAttempt(phone=phone, last_attempt_at=now)
        record.attempt_count += 1
        record.last_attempt_at = now
        if record.attempt_count >= self.max_attempts:
            record.blocked_until = now + self.block_duration
        return record

    def settle(self, record: Optional[VerificationAttempt], phone: str, counted: bool, now: datetime) -> Optional[VerificationAttempt]:
        if record is not None and record.in_flight > 0:
            record.in_flight -= 1
            if record.in_flight == 0:
                record.reserved_at = None
        if counted:
            return self.record(record, phone, now)
        if record is None or record.is_empty:
            return None
        return record

    def is_stale(self, record: VerificationAttempt, now: datetime) -> bool:
        holds_slot = record.in_flight > 0 and not self.reservation_expired(record, now)
        return not holds_slot and now - record.last_attempt_at > self.retention
