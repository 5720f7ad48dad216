import logging
from typing import Optional

import requests
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from ...application.ports.otp_provider import OTPProvider, ProviderStatus

logger = logging.getLogger(__name__)

# https://www.twilio.com/docs/api/errors
INVALID_NUMBER_CODES = {21211, 60200, 60033}
UNREACHABLE_CODES = {21408, 21610, 21612, 21614, 60205, 60410}
THROTTLED_CODES = {20429, 60203}
NOT_FOUND_CODES = {20404}


def map_twilio_error(exc: TwilioRestException) -> ProviderStatus:
    if exc.code in INVALID_NUMBER_CODES:
        return ProviderStatus.INVALID_NUMBER
    if exc.code in UNREACHABLE_CODES:
        return ProviderStatus.UNREACHABLE
    if exc.code in THROTTLED_CODES or exc.status == 429:
        return ProviderStatus.THROTTLED
    if exc.code in NOT_FOUND_CODES:
        return ProviderStatus.EXPIRED
    return ProviderStatus.ERROR


class TwilioOTPProvider(OTPProvider):
    def __init__(self, account_sid: str, auth_token: str, verify_sid: str,
                 timeout: int = 15, client: Optional[Client] = None):
        if not verify_sid:
            raise RuntimeError("Twilio Verify Service SID not configured")
        # No transport retries: one provider call per request.
        self.client = client or Client(account_sid, auth_token,
                                       http_client=TwilioHttpClient(timeout=timeout))
        self.verify_sid = verify_sid

    def _service(self):
        return self.client.verify.v2.services(self.verify_sid)

    def dispatch(self, phone: str, channel: str = "sms", locale: str = "en") -> ProviderStatus:
        try:
            verification = self._service().verifications.create(to=phone, channel=channel, locale=locale)
        except TwilioRestException as e:
            logger.warning(f"Twilio send rejected: code={e.code} status={e.status}")
            return map_twilio_error(e)
        except requests.exceptions.Timeout:
            logger.error("Twilio send timed out")
            return ProviderStatus.TIMEOUT
        except (requests.exceptions.RequestException, TwilioException) as e:
            logger.error(f"Twilio send error: {e}")
            return ProviderStatus.ERROR
        logger.info(f"Twilio verification sent, SID: {verification.sid}")
        return ProviderStatus.OK

    def check(self, phone: str, code: str) -> ProviderStatus:
        try:
            verification_check = self._service().verification_checks.create(to=phone, code=code)
        except TwilioRestException as e:
            logger.warning(f"Twilio check rejected: code={e.code} status={e.status}")
            return map_twilio_error(e)
        except requests.exceptions.Timeout:
            logger.error("Twilio check timed out")
            return ProviderStatus.TIMEOUT
        except (requests.exceptions.RequestException, TwilioException) as e:
            logger.error(f"Twilio check error: {e}")
            return ProviderStatus.ERROR

        status = verification_check.status
        if status == "approved":
            return ProviderStatus.APPROVED
        if status in ("canceled", "expired"):
            return ProviderStatus.EXPIRED
        return ProviderStatus.DENIED
