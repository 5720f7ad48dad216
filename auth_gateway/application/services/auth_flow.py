import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Union

from ..ports.audit_logger import AuditLogger
from ..ports.password_hasher import PasswordHasher
from ..ports.user_repo import NewUser, UserDto, UserRepository, UserStatus
from .otp_gateway import OtpGateway
from .results import AuthErrorCode, Result
from .role_aggregator import RoleAggregator
from .session_issuer import SessionClaims, SessionIssuer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionGrant:
    token: str
    user: UserDto
    primary_role: str
    roles: List[str]
    permissions: FrozenSet[str]


@dataclass(frozen=True)
class OtpChallenge:
    challenge_token: str
    phone_hint: str
    expires_in: int


def mask_phone(phone: str) -> str:
    return f"{phone[:4]}****{phone[-4:]}"


@dataclass
class AuthFlow:
    """Login, OTP step-up, registration and session lookup.

    Unauthenticated -> (password ok, ACTIVE) -> session issued, or, for accounts
    with OTP enabled, an SMS is sent and a challenge token returned; the session
    is issued once ``verify_login_otp`` succeeds for that challenge.
    """
    user_repo: UserRepository
    hasher: PasswordHasher
    otp_gateway: OtpGateway
    sessions: SessionIssuer
    roles: RoleAggregator = field(default_factory=RoleAggregator)
    audit: Optional[AuditLogger] = None
    default_role: str = "VISITOR"

    def _audit(self, action: str, user: Optional[UserDto] = None, success: bool = True, **details) -> None:
        if self.audit is not None:
            self.audit.log(action, user.phone_number if user else None,
                           user_id=user.id if user else None, success=success, details=details or None)

    def _grant(self, user: UserDto) -> SessionGrant:
        aggregate = self.roles.aggregate(user.roles)
        role_names = user.role_names
        token = self.sessions.issue(user, aggregate.primary_role, role_names)
        self._audit("session_issued", user)
        return SessionGrant(token=token, user=user, primary_role=aggregate.primary_role,
                            roles=role_names, permissions=aggregate.all_permissions)

    def _start_otp(self, user: UserDto) -> Result[OtpChallenge]:
        if not user.phone_number:
            logger.warning(f"OTP enabled for user {user.id} without a phone number")
            return Result.failure(AuthErrorCode.INVALID_PHONE_FORMAT)
        sent = self.otp_gateway.send_otp(user.phone_number)
        if not sent.ok:
            return Result(error=sent.error)
        return Result.success(OtpChallenge(
            challenge_token=self.sessions.issue_challenge(user.id),
            phone_hint=mask_phone(self.otp_gateway.normalizer.normalize(user.phone_number)),
            expires_in=self.sessions.challenge_expire_minutes * 60,
        ))

    def _challenge_user(self, challenge_token: str) -> Result[UserDto]:
        claim = self.sessions.verify_challenge(challenge_token)
        if not claim.ok:
            return Result(error=claim.error)
        user = self.user_repo.get_by_id(claim.value)
        if user is None or not user.otp_enabled:
            return Result.failure(AuthErrorCode.INVALID_OR_EXPIRED_TOKEN)
        if user.status != UserStatus.ACTIVE:
            return Result.failure(AuthErrorCode.ACCOUNT_NOT_ACTIVE, status=user.status.value)
        return Result.success(user)

    def login(self, email: str, password: str) -> Result[Union[SessionGrant, OtpChallenge]]:
        user = self.user_repo.get_by_email(email)
        if user is None:
            self._audit("login_failed", success=False, reason="unknown_email")
            return Result.failure(AuthErrorCode.INVALID_CREDENTIALS)

        # Checked before the password so inactive accounts never reach the hasher.
        if user.status != UserStatus.ACTIVE:
            self._audit("login_failed", user, False, reason="account_not_active", status=user.status.value)
            return Result.failure(AuthErrorCode.ACCOUNT_NOT_ACTIVE, status=user.status.value)

        if not self.hasher.verify(password, user.password_hash):
            self._audit("login_failed", user, False, reason="bad_password")
            return Result.failure(AuthErrorCode.INVALID_CREDENTIALS)

        if not user.otp_enabled:
            return Result.success(self._grant(user))
        return self._start_otp(user)

    def resend_otp(self, challenge_token: str) -> Result[OtpChallenge]:
        found = self._challenge_user(challenge_token)
        if not found.ok:
            return Result(error=found.error)
        return self._start_otp(found.value)

    def verify_login_otp(self, challenge_token: str, code: str) -> Result[SessionGrant]:
        found = self._challenge_user(challenge_token)
        if not found.ok:
            return Result(error=found.error)
        user = found.value
        verified = self.otp_gateway.verify_otp(user.phone_number, code)
        if not verified.ok:
            return Result(error=verified.error)
        return Result.success(self._grant(user))

    def register(self, email: str, password: str, first_name: str, last_name: str,
                 contact_number: Optional[str] = None, middle_name: Optional[str] = None,
                 address: Optional[str] = None) -> Result[UserDto]:
        if self.user_repo.get_by_email(email) is not None:
            return Result.failure(AuthErrorCode.EMAIL_ALREADY_REGISTERED)

        phone = None
        if contact_number:
            normalizer = self.otp_gateway.normalizer
            if not normalizer.is_valid_mobile(contact_number):
                return Result.failure(AuthErrorCode.INVALID_PHONE_FORMAT)
            phone = normalizer.normalize(contact_number)

        user = self.user_repo.create(NewUser(
            email=email,
            password_hash=self.hasher.hash(password),
            first_name=first_name,
            last_name=last_name,
            middle_name=middle_name,
            phone_number=phone,
            address=address,
            role_names=[self.default_role],
            status=UserStatus.PENDING,
        ))
        self._audit("user_registered", user)
        return Result.success(user)

    def authenticate(self, token: str) -> Result[SessionClaims]:
        return self.sessions.verify(token)

    def get_profile(self, token: str) -> Result[UserDto]:
        claims = self.sessions.verify(token)
        if not claims.ok:
            return Result(error=claims.error)
        user = self.user_repo.get_by_id(claims.value.user_id)
        if user is None:
            return Result.failure(AuthErrorCode.INVALID_OR_EXPIRED_TOKEN)
        return Result.success(user)
