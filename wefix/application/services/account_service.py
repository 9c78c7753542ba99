import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from fastapi import HTTPException

from ..ports.rate_limiter import RateLimiter
from ..ports.user_repo import UserRepository, AccountDto, STATUS_ACTIVE
from .verification_service import VerificationService, VerificationReason, IssueResult, CheckResult
from ...exceptions import APIException
from ...utils import hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)

USER_TYPES = ("consumer", "provider")

RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

CHECK_FAILURE_MESSAGES = {
    VerificationReason.NOT_FOUND: "OTP expired or not requested",
    VerificationReason.EXPIRED: "OTP expired. Please request a new one.",
    VerificationReason.EXHAUSTED: "Too many attempts. Please request a new OTP.",
    VerificationReason.DEPENDENCY_FAILURE: "Verification failed. Please try again.",
}


@dataclass
class AccountVerificationService:
    """Registration, phone verification and login on top of :class:`VerificationService`.

    Every path that sends a code (register, send, resend, unverified login)
    draws from the same per-phone send budget when ``limiter`` is set.
    """

    user_repo: UserRepository
    verification: VerificationService
    token_factory: Callable[[str], str] = create_access_token
    limiter: Optional[RateLimiter] = None
    send_max_per_window: int = 5
    send_window_seconds: int = 3600

    def register(self, name: str, email: str, phone: str, password: str, user_type: str) -> Tuple[AccountDto, IssueResult]:
        if user_type not in USER_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid user type. Must be one of: {list(USER_TYPES)}")
        if self.user_repo.get_by_email(email) or self.user_repo.get_by_phone(phone):
            raise HTTPException(status_code=409, detail="User already exists")

        account = self.user_repo.create(name, email, phone, hash_password(password), user_type)
        logger.info(f"Registered {user_type} account {account.id}, pending phone verification")

        # Delivery failures do not undo the registration; the client can resend.
        if not self._send_allowed(phone):
            return account, IssueResult(ok=False)
        issued = self.verification.issue(phone)
        return account, issued

    def send_code(self, phone: str) -> IssueResult:
        self._require_account(phone)
        self._enforce_send_limit(phone)
        return self._raise_for_issue(self.verification.issue(phone))

    def resend_code(self, phone: str) -> IssueResult:
        self._require_account(phone)
        self._enforce_send_limit(phone)
        return self._raise_for_issue(self.verification.resend(phone))

    def verify_phone(self, phone: str, code: str) -> Tuple[AccountDto, str]:
        account = self._require_account(phone)

        def activate() -> None:
            self.user_repo.update_verification(account.id, phone_verified=True, status=STATUS_ACTIVE)

        result = self.verification.check(phone, code, on_verified=activate)
        if not result.ok:
            self._raise_for_check(result)

        verified = self.user_repo.get_by_id(account.id) or account
        logger.info(f"Phone verified for account {account.id}")
        return verified, self.token_factory(account.id)

    def login(self, email: str, password: str) -> Tuple[AccountDto, str]:
        account = self.user_repo.get_by_email(email)
        if not account or not verify_password(password, account.password_hash):
            raise HTTPException(status_code=401, detail="Invalid credentials")

        if not account.phone_verified:
            # resend keeps a recent code alive instead of replacing it
            otp_sent = False
            if self._send_allowed(account.phone):
                otp_sent = self.verification.resend(account.phone).ok
            detail = "Phone number not verified."
            if otp_sent:
                detail = "Phone number not verified. A verification code has been sent."
            raise APIException(
                status_code=403,
                detail=detail,
                data={"verification_required": True, "phone": account.phone, "otp_sent": otp_sent},
            )
        return account, self.token_factory(account.id)

    def get_account(self, account_id: str) -> AccountDto:
        account = self.user_repo.get_by_id(account_id)
        if not account:
            raise HTTPException(status_code=404, detail="User not found")
        return account

    def _require_account(self, phone: str) -> AccountDto:
        account = self.user_repo.get_by_phone(phone)
        if not account:
            raise HTTPException(status_code=404, detail="User not found")
        return account

    def _send_allowed(self, phone: str) -> bool:
        if self.limiter is None:
            return True
        allowed = self.limiter.allow(f"otp-send:{phone}", self.send_max_per_window, self.send_window_seconds)
        if not allowed:
            logger.warning("OTP send limit exceeded")
        return allowed

    def _enforce_send_limit(self, phone: str) -> None:
        if not self._send_allowed(phone):
            raise APIException(
                status_code=429,
                detail="Too many OTP requests. Please try again later.",
                data={"reason": RATE_LIMIT_EXCEEDED},
            )

    def _raise_for_issue(self, result: IssueResult) -> IssueResult:
        if result.ok:
            return result
        if result.reason == VerificationReason.TOO_SOON:
            raise APIException(
                status_code=429,
                detail=f"Please wait {result.retry_after_seconds} seconds before requesting a new OTP.",
                data={"reason": result.reason.value, "retry_after_seconds": result.retry_after_seconds},
                headers={"Retry-After": str(result.retry_after_seconds)},
            )
        raise APIException(
            status_code=502,
            detail="Failed to send OTP. Please try again.",
            data={"reason": VerificationReason.DEPENDENCY_FAILURE.value},
        )

    def _raise_for_check(self, result: CheckResult) -> None:
        if result.reason == VerificationReason.MISMATCH:
            raise APIException(
                status_code=400,
                detail=f"Invalid OTP. {result.remaining_attempts} attempts remaining.",
                data={"reason": result.reason.value, "remaining_attempts": result.remaining_attempts},
            )
        status_code = 503 if result.reason == VerificationReason.DEPENDENCY_FAILURE else 400
        raise APIException(
            status_code=status_code,
            detail=CHECK_FAILURE_MESSAGES[result.reason],
            data={"reason": result.reason.value},
        )
