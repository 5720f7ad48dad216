from enum import Enum
from typing import Protocol


class ProviderStatus(str, Enum):
    OK = "ok"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    INVALID_NUMBER = "invalid_number"
    UNREACHABLE = "unreachable"
    THROTTLED = "throttled"
    TIMEOUT = "timeout"
    ERROR = "error"


class OTPProvider(Protocol):
    def dispatch(self, phone: str, channel: str = "sms", locale: str = "en") -> ProviderStatus:
        ...

    def check(self, phone: str, code: str) -> ProviderStatus:
        ...
