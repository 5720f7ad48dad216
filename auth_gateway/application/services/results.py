"""Typed outcomes returned by the gateway and the auth flows.

Expected failures (bad phone, rate limit, wrong password...) are values, not
exceptions. Routers turn an ``AuthError`` into an HTTP response via
``AuthError.message`` and ``AuthError.http_status``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class AuthErrorCode(str, Enum):
    INVALID_PHONE_FORMAT = "INVALID_PHONE_FORMAT"
    RATE_LIMITED = "RATE_LIMITED"
    PROVIDER_RATE_LIMITED = "PROVIDER_RATE_LIMITED"
    PHONE_UNREACHABLE = "PHONE_UNREACHABLE"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    INVALID_OR_EXPIRED_CODE = "INVALID_OR_EXPIRED_CODE"
    ACCOUNT_NOT_ACTIVE = "ACCOUNT_NOT_ACTIVE"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_OR_EXPIRED_TOKEN = "INVALID_OR_EXPIRED_TOKEN"
    EMAIL_ALREADY_REGISTERED = "EMAIL_ALREADY_REGISTERED"


_MESSAGES = {
    AuthErrorCode.INVALID_PHONE_FORMAT: "Invalid Philippine mobile number format",
    AuthErrorCode.PROVIDER_RATE_LIMITED: "Too many verification requests. Please try again later.",
    AuthErrorCode.PHONE_UNREACHABLE: "We could not reach this mobile number. Please check it and try again.",
    AuthErrorCode.DELIVERY_FAILED: "Failed to send verification code. Please try again.",
    AuthErrorCode.INVALID_OR_EXPIRED_CODE: "Invalid verification code",
    AuthErrorCode.ACCOUNT_NOT_ACTIVE: "Account is not active",
    AuthErrorCode.INVALID_CREDENTIALS: "Invalid credentials",
    AuthErrorCode.INVALID_OR_EXPIRED_TOKEN: "Invalid or expired token",
    AuthErrorCode.EMAIL_ALREADY_REGISTERED: "User already exists",
}

_HTTP_STATUS = {
    AuthErrorCode.INVALID_PHONE_FORMAT: 400,
    AuthErrorCode.RATE_LIMITED: 429,
    AuthErrorCode.PROVIDER_RATE_LIMITED: 429,
    AuthErrorCode.PHONE_UNREACHABLE: 400,
    AuthErrorCode.DELIVERY_FAILED: 502,
    AuthErrorCode.INVALID_OR_EXPIRED_CODE: 400,
    AuthErrorCode.ACCOUNT_NOT_ACTIVE: 403,
    AuthErrorCode.INVALID_CREDENTIALS: 401,
    AuthErrorCode.INVALID_OR_EXPIRED_TOKEN: 401,
    AuthErrorCode.EMAIL_ALREADY_REGISTERED: 400,
}


@dataclass(frozen=True)
class AuthError:
    code: AuthErrorCode
    wait_minutes: Optional[int] = None
    status: Optional[str] = None
    expired: bool = False

    @property
    def message(self) -> str:
        if self.code == AuthErrorCode.RATE_LIMITED:
            return f"Too many attempts. Please wait {self.wait_minutes} minutes before trying again."
        if self.code == AuthErrorCode.INVALID_OR_EXPIRED_CODE and self.expired:
            return "Verification code has expired. Please request a new code."
        return _MESSAGES[self.code]

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.code]

    def to_data(self) -> dict:
        data: dict = {"error": self.code.value}
        if self.wait_minutes is not None:
            data["wait_minutes"] = self.wait_minutes
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[AuthError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, code: AuthErrorCode, **details: Any) -> "Result":
        return cls(error=AuthError(code, **details))


# Shorthand for operations with no payload
OtpResult = Result[None]
