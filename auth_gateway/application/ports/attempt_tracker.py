import math
from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    wait_seconds: Optional[int] = None

    @property
    def wait_minutes(self) -> Optional[int]:
        if self.wait_seconds is None:
            return None
        return math.ceil(self.wait_seconds / 60)


class AttemptTracker(Protocol):
    def check_allowed(self, phone: str) -> RateLimitDecision:
        ...

    def record_attempt(self, phone: str) -> None:
        ...

    def clear(self, phone: str) -> None:
        ...

    def reserve(self, phone: str) -> RateLimitDecision:
        """Atomically check and hold one attempt slot for an in-flight provider call."""
        ...

    def settle(self, phone: str, counted: bool) -> None:
        """Release a reserved slot, recording it as an attempt when ``counted``."""
        ...

    def sweep(self) -> int:
        """Evict records idle past the retention window; returns how many went."""
        ...
