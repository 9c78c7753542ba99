"""Phone verification lifecycle: issue, check and resend one-time codes.

Each phone has at most one live :class:`VerificationRecord`. Records move from
pending to verified (and are then deleted) or are dropped when they expire or
run out of attempts. Expiry is checked lazily when a record is read; nothing
sweeps the store in the background.

Failures are returned as typed reasons on the result objects. Nothing raised
by the store or the notifier escapes this module.
"""
import hmac
import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from ..ports.audit_logger import AuditLogger
from ..ports.notifier import Notifier
from ..ports.verification_store import VerificationRecord, VerificationStore, VerificationStoreError

logger = logging.getLogger(__name__)

# Extra lifetime given to records in stores with native expiry, so that the
# next check still sees the record and can report EXPIRED instead of NOT_FOUND.
RECORD_GRACE_SECONDS = 300


class VerificationReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"
    MISMATCH = "MISMATCH"
    TOO_SOON = "TOO_SOON"
    DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"


@dataclass
class CheckResult:
    ok: bool
    reason: Optional[VerificationReason] = None
    remaining_attempts: Optional[int] = None


@dataclass
class IssueResult:
    ok: bool
    code: Optional[str] = None
    expires_at: Optional[datetime] = None
    reason: Optional[VerificationReason] = None
    retry_after_seconds: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VerificationService:
    store: VerificationStore
    notifier: Notifier
    audit: Optional[AuditLogger] = None
    ttl: timedelta = timedelta(minutes=10)
    max_attempts: int = 3
    code_length: int = 6
    resend_cooldown_seconds: int = 60
    deterministic_code_for_testing: bool = False
    test_code: str = "123456"
    clock: Callable[[], datetime] = _utcnow

    @classmethod
    def from_settings(cls, settings, store: VerificationStore, notifier: Notifier,
                      audit: Optional[AuditLogger] = None) -> "VerificationService":
        return cls(
            store=store,
            notifier=notifier,
            audit=audit,
            ttl=timedelta(minutes=settings.OTP_TTL_MINUTES),
            max_attempts=settings.OTP_MAX_ATTEMPTS,
            code_length=settings.OTP_LENGTH,
            resend_cooldown_seconds=settings.OTP_RESEND_COOLDOWN_SECONDS,
            deterministic_code_for_testing=settings.OTP_DETERMINISTIC_CODE_FOR_TESTING,
            test_code=settings.OTP_TEST_CODE,
        )

    def issue(self, phone: str) -> IssueResult:
        """Store a fresh code for ``phone`` and hand it to the notifier.

        Any previous record for the phone is replaced, so its code stops
        working immediately. Concurrent issues for one phone are last write wins.
        """
        try:
            with self.store.lock(phone):
                record = self._store_new_record(phone)
        except VerificationStoreError as e:
            logger.error(f"Could not store verification code: {e}")
            self._audit("otp_issue_failed", phone, False, {"error": str(e)})
            return IssueResult(ok=False, reason=VerificationReason.DEPENDENCY_FAILURE)
        self._audit("otp_issued", phone, True)
        return self._deliver(record)

    def resend(self, phone: str) -> IssueResult:
        """Like :meth:`issue`, but refuses while the live code is younger than the cooldown."""
        try:
            with self.store.lock(phone):
                existing = self.store.get(phone)
                if existing is not None and self.resend_cooldown_seconds > 0:
                    elapsed = (self.clock() - existing.issued_at).total_seconds()
                    if elapsed < self.resend_cooldown_seconds:
                        retry_after = int(math.ceil(self.resend_cooldown_seconds - elapsed))
                        self._audit("otp_resend_too_soon", phone, False, {"retry_after_seconds": retry_after})
                        return IssueResult(
                            ok=False,
                            reason=VerificationReason.TOO_SOON,
                            retry_after_seconds=retry_after,
                        )
                record = self._store_new_record(phone)
        except VerificationStoreError as e:
            logger.error(f"Could not store verification code: {e}")
            self._audit("otp_resend_failed", phone, False, {"error": str(e)})
            return IssueResult(ok=False, reason=VerificationReason.DEPENDENCY_FAILURE)
        self._audit("otp_resent", phone, True)
        return self._deliver(record)

    def check(self, phone: str, submitted_code: str,
              on_verified: Optional[Callable[[], None]] = None) -> CheckResult:
        """Check ``submitted_code`` against the live record for ``phone``.

        ``on_verified`` is the consuming operation (typically the account
        update). It runs under the phone's lock after the code matched. If it
        raises, the record is kept with ``verified=True`` so the same code can
        be submitted again to retry only that operation.
        """
        try:
            with self.store.lock(phone):
                return self._check_locked(phone, submitted_code, on_verified)
        except VerificationStoreError as e:
            logger.error(f"Verification store unavailable: {e}")
            self._audit("otp_check_failed", phone, False, {"error": str(e)})
            return CheckResult(ok=False, reason=VerificationReason.DEPENDENCY_FAILURE)

    def _check_locked(self, phone: str, submitted_code: str,
                      on_verified: Optional[Callable[[], None]]) -> CheckResult:
        record = self.store.get(phone)
        if record is None:
            return CheckResult(ok=False, reason=VerificationReason.NOT_FOUND)

        now = self.clock()
        if now > record.expires_at:
            self.store.delete(phone)
            self._audit("otp_expired", phone, False)
            return CheckResult(ok=False, reason=VerificationReason.EXPIRED)

        if record.attempts >= self.max_attempts:
            self.store.delete(phone)
            self._audit("otp_exhausted", phone, False)
            return CheckResult(ok=False, reason=VerificationReason.EXHAUSTED)

        if hmac.compare_digest(record.code.encode(), str(submitted_code).encode()):
            record.verified = True
            if on_verified is not None:
                self.store.put(record, self._ttl_seconds(record, now))
                try:
                    on_verified()
                except Exception as e:
                    logger.error(f"Post-verification update failed for verified code: {e}")
                    self._audit("otp_verified_update_failed", phone, False, {"error": str(e)})
                    return CheckResult(ok=False, reason=VerificationReason.DEPENDENCY_FAILURE)
            self.store.delete(phone)
            self._audit("otp_verified", phone, True)
            return CheckResult(ok=True)

        record.attempts += 1
        self.store.put(record, self._ttl_seconds(record, now))
        remaining = max(0, self.max_attempts - record.attempts)
        self._audit("otp_mismatch", phone, False, {"remaining_attempts": remaining})
        return CheckResult(ok=False, reason=VerificationReason.MISMATCH, remaining_attempts=remaining)

    def _store_new_record(self, phone: str) -> VerificationRecord:
        now = self.clock()
        record = VerificationRecord(
            phone=phone,
            code=self._generate_code(),
            issued_at=now,
            expires_at=now + self.ttl,
        )
        self.store.put(record, self._ttl_seconds(record, now))
        return record

    def _deliver(self, record: VerificationRecord) -> IssueResult:
        if self.deterministic_code_for_testing:
            logger.info(f"[OTP] code for {record.phone}: {record.code} (TEST MODE)")
        try:
            self.notifier.send(record.phone, record.code)
        except Exception as e:
            # The stored record stays valid; the caller decides whether to resend.
            logger.error(f"Failed to deliver verification code: {e}")
            self._audit("otp_delivery_failed", record.phone, False, {"error": str(e)})
            return IssueResult(
                ok=False,
                code=record.code,
                expires_at=record.expires_at,
                reason=VerificationReason.DEPENDENCY_FAILURE,
            )
        return IssueResult(ok=True, code=record.code, expires_at=record.expires_at)

    def _generate_code(self) -> str:
        if self.deterministic_code_for_testing:
            return self.test_code
        return f"{secrets.randbelow(10 ** self.code_length):0{self.code_length}d}"

    def _ttl_seconds(self, record: VerificationRecord, now: datetime) -> int:
        remaining = (record.expires_at - now).total_seconds()
        return max(1, int(math.ceil(remaining))) + RECORD_GRACE_SECONDS

    def _audit(self, action: str, phone: str, success: bool, details: Optional[dict] = None) -> None:
        if self.audit is None:
            return
        self.audit.log(action, phone, success=success, details=details)
