"""FastAPI dependency providers wiring ports to their adapters."""
import logging
from functools import lru_cache

from fastapi import Depends
from sqlmodel import Session

from .config import settings
from .database import get_session
from .application.ports.audit_logger import AuditLogger
from .application.ports.notifier import Notifier
from .application.ports.rate_limiter import RateLimiter
from .application.ports.verification_store import VerificationStore
from .application.services.account_service import AccountVerificationService
from .application.services.verification_service import VerificationService
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.notify.log_notifier import LoggingNotifier
from .infrastructure.notify.twilio_notifier import TwilioSmsNotifier
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository
from .infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from .infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
from .infrastructure.verification.memory_store import InMemoryVerificationStore
from .infrastructure.verification.redis_store import RedisVerificationStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_verification_store() -> VerificationStore:
    if settings.REDIS_URL:
        logger.info("Using Redis verification store")
        return RedisVerificationStore.from_url(settings.REDIS_URL)
    logger.info("Using in-memory verification store")
    return InMemoryVerificationStore()


@lru_cache()
def get_notifier() -> Notifier:
    if settings.twilio_configured:
        return TwilioSmsNotifier()
    logger.warning("Twilio is not configured; verification codes will only be logged")
    return LoggingNotifier()


@lru_cache()
def get_audit_logger() -> AuditLogger:
    return StdAuditLogger()


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    if settings.REDIS_URL:
        return RedisRateLimiter.from_url(settings.REDIS_URL)
    return InMemoryRateLimiter()


@lru_cache()
def get_verification_service() -> VerificationService:
    return VerificationService.from_settings(
        settings,
        store=get_verification_store(),
        notifier=get_notifier(),
        audit=get_audit_logger(),
    )


def get_account_service(session: Session = Depends(get_session),
                        limiter: RateLimiter = Depends(get_rate_limiter)) -> AccountVerificationService:
    return AccountVerificationService(
        user_repo=SqlUserRepository(session),
        verification=get_verification_service(),
        limiter=limiter,
        send_max_per_window=settings.OTP_SEND_MAX_PER_WINDOW,
        send_window_seconds=settings.OTP_SEND_WINDOW_SECONDS,
    )
