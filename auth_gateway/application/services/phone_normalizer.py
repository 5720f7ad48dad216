import re
from dataclasses import dataclass


@dataclass(frozen=True)
class PhoneNormalizer:
    """Canonicalizes national mobile numbers to ``+<country><subscriber>``.

    Accepted inputs (after stripping every non-digit):
      * trunk prefix + subscriber, e.g. ``09123456789``
      * country code + subscriber, e.g. ``639123456789`` / ``+63 912 345 6789``
      * bare subscriber, e.g. ``9123456789``
    """
    country_code: str = "63"
    trunk_prefix: str = "0"
    subscriber_pattern: str = r"9\d{9}"

    def _digits(self, raw: str) -> str:
        return re.sub(r"\D", "", raw or "")

    def _subscriber(self, raw: str) -> str:
        digits = self._digits(raw)
        if digits.startswith(self.trunk_prefix) and re.fullmatch(self.trunk_prefix + self.subscriber_pattern, digits):
            return digits[len(self.trunk_prefix):]
        if digits.startswith(self.country_code) and re.fullmatch(self.country_code + self.subscriber_pattern, digits):
            return digits[len(self.country_code):]
        return digits

    def is_valid_mobile(self, raw: str) -> bool:
        return re.fullmatch(self.subscriber_pattern, self._subscriber(raw)) is not None

    def normalize(self, raw: str) -> str:
        # Invalid input is still formatted; callers check is_valid_mobile first.
        return f"+{self.country_code}{self._subscriber(raw)}"
