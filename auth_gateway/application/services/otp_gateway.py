import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from ..ports.attempt_tracker import AttemptTracker
from ..ports.audit_logger import AuditLogger
from ..ports.otp_provider import OTPProvider, ProviderStatus
from .phone_normalizer import PhoneNormalizer
from .results import AuthErrorCode, OtpResult, Result

logger = logging.getLogger(__name__)

# Provider answers that say something about the number itself count toward the
# abuse budget; transient/provider-side failures do not.
COUNTED_SEND_STATUSES = {ProviderStatus.OK, ProviderStatus.INVALID_NUMBER, ProviderStatus.UNREACHABLE}

_SEND_ERRORS = {
    ProviderStatus.INVALID_NUMBER: AuthErrorCode.INVALID_PHONE_FORMAT,
    ProviderStatus.UNREACHABLE: AuthErrorCode.PHONE_UNREACHABLE,
    ProviderStatus.THROTTLED: AuthErrorCode.PROVIDER_RATE_LIMITED,
}


@dataclass
class OtpGateway:
    """Sends and checks SMS codes, one provider call per request, no retries."""
    provider: OTPProvider
    tracker: AttemptTracker
    normalizer: PhoneNormalizer = field(default_factory=PhoneNormalizer)
    audit: Optional[AuditLogger] = None
    locale: str = "en"

    def _audit(self, action: str, phone: str, success: bool, details: Optional[Dict[str, Any]] = None) -> None:
        if self.audit is not None:
            self.audit.log(action, phone, success=success, details=details)

    def _settle(self, canonical: str, counted: bool) -> None:
        try:
            self.tracker.settle(canonical, counted=counted)
        except Exception:
            # The slot is reclaimed once its reservation times out
            logger.exception(f"Could not settle OTP reservation for {canonical[:6]}***")

    def send_otp(self, phone: str) -> OtpResult:
        if not self.normalizer.is_valid_mobile(phone):
            self._audit("otp_send_rejected", phone, False, {"error": AuthErrorCode.INVALID_PHONE_FORMAT.value})
            return Result.failure(AuthErrorCode.INVALID_PHONE_FORMAT)

        canonical = self.normalizer.normalize(phone)
        decision = self.tracker.reserve(canonical)
        if not decision.allowed:
            logger.warning(f"OTP send rate limited for {canonical[:6]}***")
            self._audit("otp_rate_limited", canonical, False, {"wait_minutes": decision.wait_minutes})
            return Result.failure(AuthErrorCode.RATE_LIMITED, wait_minutes=decision.wait_minutes)

        status = ProviderStatus.ERROR
        try:
            status = self.provider.dispatch(canonical, channel="sms", locale=self.locale)
        except Exception:
            logger.exception(f"OTP provider dispatch raised for {canonical[:6]}***")
        finally:
            self._settle(canonical, counted=status in COUNTED_SEND_STATUSES)

        if status == ProviderStatus.OK:
            self._audit("otp_sent", canonical, True)
            return Result.success()

        code = _SEND_ERRORS.get(status, AuthErrorCode.DELIVERY_FAILED)
        logger.warning(f"OTP send failed for {canonical[:6]}***: provider={status.value}")
        self._audit("otp_send_failed", canonical, False, {"provider_status": status.value})
        return Result.failure(code)

    def verify_otp(self, phone: str, code: str) -> OtpResult:
        canonical = self.normalizer.normalize(phone)
        decision = self.tracker.reserve(canonical)
        if not decision.allowed:
            self._audit("otp_rate_limited", canonical, False, {"wait_minutes": decision.wait_minutes})
            return Result.failure(AuthErrorCode.RATE_LIMITED, wait_minutes=decision.wait_minutes)

        status = ProviderStatus.ERROR
        try:
            status = self.provider.check(canonical, code)
        except Exception:
            logger.exception(f"OTP provider check raised for {canonical[:6]}***")
        finally:
            # Every check counts, whatever the answer.
            self._settle(canonical, counted=True)

        if status == ProviderStatus.APPROVED:
            self.tracker.clear(canonical)
            self._audit("otp_verified", canonical, True)
            return Result.success()

        self._audit("otp_verify_failed", canonical, False, {"provider_status": status.value})
        return Result.failure(AuthErrorCode.INVALID_OR_EXPIRED_CODE, expired=status == ProviderStatus.EXPIRED)
