"""Object graph for the gateway and the FastAPI dependencies that hand it out.

The container is built once in the app lifespan and stored on ``app.state``;
request handlers reach it through ``get_auth_flow`` / ``get_current_claims``.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.engine import Engine

from .application.ports.attempt_tracker import AttemptTracker
from .application.ports.otp_provider import OTPProvider
from .application.services.attempt_policy import AttemptPolicy
from .application.services.auth_flow import AuthFlow
from .application.services.otp_gateway import OtpGateway
from .application.services.phone_normalizer import PhoneNormalizer
from .application.services.results import AuthErrorCode, AuthError
from .application.services.role_aggregator import RoleAggregator
from .application.services.session_issuer import SessionClaims, SessionIssuer
from .config import Settings
from .exceptions import auth_error_exception
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.otp.console_provider import ConsoleOTPProvider
from .infrastructure.otp.twilio_provider import TwilioOTPProvider
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository
from .infrastructure.rate_limit.cleanup_sweeper import CleanupSweeper
from .infrastructure.rate_limit.memory_attempt_tracker import InMemoryAttemptTracker
from .infrastructure.rate_limit.redis_attempt_tracker import RedisAttemptTracker
from .infrastructure.security.passlib_hasher import PasslibPasswordHasher

logger = logging.getLogger(__name__)


@dataclass
class Container:
    auth_flow: AuthFlow
    otp_gateway: OtpGateway
    tracker: AttemptTracker
    sweeper: CleanupSweeper
    user_repo: SqlUserRepository


def build_attempt_tracker(settings: Settings) -> AttemptTracker:
    policy = AttemptPolicy(
        max_attempts=settings.OTP_MAX_ATTEMPTS,
        block_duration=timedelta(minutes=settings.OTP_BLOCK_DURATION_MINUTES),
        retention=timedelta(hours=settings.OTP_ATTEMPT_RETENTION_HOURS),
        reservation_timeout=timedelta(seconds=max(settings.OTP_RESERVATION_TIMEOUT_SECONDS,
                                                  settings.SMS_PROVIDER_TIMEOUT_SECONDS)),
    )
    store = settings.ATTEMPT_STORE.lower()
    if store == "redis":
        logger.info("Using Redis OTP attempt store")
        return RedisAttemptTracker(url=settings.REDIS_URL, policy=policy)
    if store != "memory":
        raise ValueError(f"Unknown ATTEMPT_STORE: {settings.ATTEMPT_STORE}")
    return InMemoryAttemptTracker(policy=policy, shards=settings.ATTEMPT_STORE_SHARDS)


def build_otp_provider(settings: Settings) -> OTPProvider:
    provider = settings.OTP_PROVIDER.lower()
    if provider == "console":
        logger.warning("OTP_PROVIDER=console: codes are logged, not sent")
        return ConsoleOTPProvider()
    if provider != "twilio":
        raise ValueError(f"Unknown OTP_PROVIDER: {settings.OTP_PROVIDER}")
    return TwilioOTPProvider(
        settings.TWILIO_ACCOUNT_SID,
        settings.TWILIO_AUTH_TOKEN,
        settings.TWILIO_VERIFY_SERVICE_SID,
        timeout=settings.SMS_PROVIDER_TIMEOUT_SECONDS,
    )


def build_container(settings: Settings, engine: Engine,
                    provider: Optional[OTPProvider] = None,
                    tracker: Optional[AttemptTracker] = None) -> Container:
    audit = StdAuditLogger()
    tracker = tracker or build_attempt_tracker(settings)
    gateway = OtpGateway(
        provider=provider or build_otp_provider(settings),
        tracker=tracker,
        normalizer=PhoneNormalizer(country_code=settings.PHONE_COUNTRY_CODE,
                                   trunk_prefix=settings.PHONE_TRUNK_PREFIX),
        audit=audit,
        locale=settings.OTP_LOCALE,
    )
    user_repo = SqlUserRepository(engine)
    flow = AuthFlow(
        user_repo=user_repo,
        hasher=PasslibPasswordHasher(),
        otp_gateway=gateway,
        sessions=SessionIssuer(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            expire_minutes=settings.SESSION_TOKEN_EXPIRE_MINUTES,
            challenge_expire_minutes=settings.OTP_CHALLENGE_EXPIRE_MINUTES,
        ),
        roles=RoleAggregator(fallback_role=settings.DEFAULT_ROLE,
                             priority=tuple(settings.role_priority_list)),
        audit=audit,
        default_role=settings.DEFAULT_ROLE,
    )
    sweeper = CleanupSweeper(tracker, interval_seconds=settings.OTP_CLEANUP_INTERVAL_MINUTES * 60)
    return Container(auth_flow=flow, otp_gateway=gateway, tracker=tracker,
                     sweeper=sweeper, user_repo=user_repo)


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_auth_flow(container: Container = Depends(get_container)) -> AuthFlow:
    return container.auth_flow


# Auth scheme
bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(request: Request,
                     credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    if credentials and credentials.credentials:
        return credentials.credentials
    # Fallback to cookie
    token = request.cookies.get("access_token")
    if not token:
        raise auth_error_exception(AuthError(AuthErrorCode.INVALID_OR_EXPIRED_TOKEN))
    return token


def get_current_claims(token: str = Depends(get_bearer_token),
                       flow: AuthFlow = Depends(get_auth_flow)) -> SessionClaims:
    result = flow.authenticate(token)
    if not result.ok:
        logger.warning("JWT token rejected")
        raise auth_error_exception(result.error)
    return result.value
