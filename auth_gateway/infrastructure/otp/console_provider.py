import logging
from collections import deque
from typing import Deque, Tuple

from ...application.ports.otp_provider import OTPProvider, ProviderStatus

logger = logging.getLogger(__name__)


class ConsoleOTPProvider(OTPProvider):
    """Development provider: logs instead of texting and accepts one fixed code.

    ``sent`` keeps only the most recent dispatches so a long-running dev server
    does not grow without bound.
    """

    MOCK_CODE = "123456"
    SENT_HISTORY = 100

    def __init__(self, code: str = MOCK_CODE, history: int = SENT_HISTORY) -> None:
        self.code = code
        self.sent: Deque[Tuple[str, str, str]] = deque(maxlen=history)

    def dispatch(self, phone: str, channel: str = "sms", locale: str = "en") -> ProviderStatus:
        self.sent.append((phone, channel, locale))
        logger.warning(f"[DEBUG OTP] {phone[:6]}***: {self.code}")
        return ProviderStatus.OK

    def check(self, phone: str, code: str) -> ProviderStatus:
        if code == self.code:
            return ProviderStatus.APPROVED
        return ProviderStatus.DENIED
