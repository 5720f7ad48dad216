import threading
import zlib
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ...application.ports.attempt_tracker import AttemptTracker, RateLimitDecision
from ...application.services.attempt_policy import AttemptPolicy, VerificationAttempt, utcnow


class _Shard:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.records: Dict[str, VerificationAttempt] = {}


class InMemoryAttemptTracker(AttemptTracker):
    """Per-process attempt store.

    Phones are hashed onto a fixed number of shards, each with its own lock, so
    operations on one number are serialized while different numbers rarely
    contend.
    """

    def __init__(self, policy: Optional[AttemptPolicy] = None, shards: int = 64,
                 clock: Callable[[], datetime] = utcnow) -> None:
        self.policy = policy or AttemptPolicy()
        self._clock = clock
        self._shards: List[_Shard] = [_Shard() for _ in range(max(1, shards))]
        self._sweep_lock = threading.Lock()

    def _shard(self, phone: str) -> _Shard:
        return self._shards[zlib.crc32(phone.encode()) % len(self._shards)]

    def _store(self, shard: _Shard, phone: str, record: Optional[VerificationAttempt]) -> None:
        if record is None:
            shard.records.pop(phone, None)
        else:
            shard.records[phone] = record

    def check_allowed(self, phone: str) -> RateLimitDecision:
        shard = self._shard(phone)
        with shard.lock:
            decision, record = self.policy.check(shard.records.get(phone), self._clock())
            self._store(shard, phone, record)
            return decision

    def record_attempt(self, phone: str) -> None:
        shard = self._shard(phone)
        with shard.lock:
            record = self.policy.record(shard.records.get(phone), phone, self._clock())
            self._store(shard, phone, record)

    def clear(self, phone: str) -> None:
        shard = self._shard(phone)
        with shard.lock:
            shard.records.pop(phone, None)

    def reserve(self, phone: str) -> RateLimitDecision:
        shard = self._shard(phone)
        with shard.lock:
            decision, record = self.policy.reserve(shard.records.get(phone), phone, self._clock())
            self._store(shard, phone, record)
            return decision

    def settle(self, phone: str, counted: bool) -> None:
        shard = self._shard(phone)
        with shard.lock:
            record = self.policy.settle(shard.records.get(phone), phone, counted, self._clock())
            self._store(shard, phone, record)

    def get(self, phone: str) -> Optional[VerificationAttempt]:
        shard = self._shard(phone)
        with shard.lock:
            return shard.records.get(phone)

    def sweep(self) -> int:
        # Only one sweep at a time; a concurrent call is a no-op.
        if not self._sweep_lock.acquire(blocking=False):
            return 0
        try:
            removed = 0
            for shard in self._shards:
                with shard.lock:
                    now = self._clock()
                    stale = [phone for phone, rec in shard.records.items() if self.policy.is_stale(rec, now)]
                    for phone in stale:
                        del shard.records[phone]
                    removed += len(stale)
            return removed
        finally:
            self._sweep_lock.release()

    def __len__(self) -> int:
        return sum(len(shard.records) for shard in self._shards)
