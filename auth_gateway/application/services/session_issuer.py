import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Tuple

import jwt

from ..ports.user_repo import UserDto
from .attempt_policy import utcnow
from .results import AuthErrorCode, Result

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
CHALLENGE_TOKEN_TYPE = "otp_challenge"


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: str
    primary_role: str
    roles: Tuple[str, ...]
    issued_at: datetime
    expires_at: datetime


@dataclass
class SessionIssuer:
    secret_key: str
    algorithm: str = "HS256"
    expire_minutes: int = 7 * 24 * 60
    challenge_expire_minutes: int = 15
    clock: Callable[[], datetime] = utcnow

    def _encode(self, data: dict, minutes: int) -> str:
        now = self.clock()
        to_encode = data.copy()
        to_encode.update({"iat": now, "exp": now + timedelta(minutes=minutes)})
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def _decode(self, token: str, required: list) -> dict:
        return jwt.decode(token, self.secret_key, algorithms=[self.algorithm],
                          options={"require": ["exp", "iat", "type"] + required})

    def issue(self, identity: UserDto, primary_role: str, role_names: Iterable[str]) -> str:
        """Create the signed session token for one authentication event."""
        return self._encode({
            "userId": identity.id,
            "email": identity.email,
            "primaryRole": primary_role,
            "roles": list(dict.fromkeys(role_names)),
            "type": ACCESS_TOKEN_TYPE,
        }, self.expire_minutes)

    def verify(self, token: str) -> Result[SessionClaims]:
        """Fails closed: any decode problem yields INVALID_OR_EXPIRED_TOKEN."""
        try:
            payload = self._decode(token, ["userId", "email", "primaryRole", "roles"])
        except jwt.ExpiredSignatureError:
            logger.info("Session token has expired")
            return Result.failure(AuthErrorCode.INVALID_OR_EXPIRED_TOKEN)
        except jwt.PyJWTError as e:
            logger.warning(f"Session token rejected: {e}")
            return Result.failure(AuthErrorCode.INVALID_OR_EXPIRED_TOKEN)

        if payload["type"] != ACCESS_TOKEN_TYPE or not isinstance(payload["roles"], list):
            return Result.failure(AuthErrorCode.INVALID_OR_EXPIRED_TOKEN)

        return Result.success(SessionClaims(
            user_id=payload["userId"],
            email=payload["email"],
            primary_role=payload["primaryRole"],
            roles=tuple(payload["roles"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        ))

    def issue_challenge(self, user_id: str) -> str:
        """Short-lived token binding a pending OTP step to a passed password check."""
        return self._encode({"sub": user_id, "type": CHALLENGE_TOKEN_TYPE}, self.challenge_expire_minutes)

    def verify_challenge(self, token: str) -> Result[str]:
        try:
            payload = self._decode(token, ["sub"])
        except jwt.PyJWTError as e:
            logger.info(f"OTP challenge rejected: {e}")
            return Result.failure(AuthErrorCode.INVALID_OR_EXPIRED_TOKEN)
        if payload["type"] != CHALLENGE_TOKEN_TYPE:
            return Result.failure(AuthErrorCode.INVALID_OR_EXPIRED_TOKEN)
        return Result.success(payload["sub"])
