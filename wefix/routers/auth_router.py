# wefix/routers/auth_router.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..application.services.account_service import AccountVerificationService
from ..application.services.verification_service import IssueResult
from ..config import settings
from ..dependencies import get_account_service
from ..exceptions import create_success_response
from ..schemas import (
    RegisterRequest, PhoneRequest, VerifyOTPRequest, LoginRequest,
    AccountResponse, EnvelopeResponse,
)
from ..utils import decode_jwt_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

oauth2_scheme = HTTPBearer(auto_error=False)


def _otp_data(phone: str, issued: IssueResult) -> dict:
    data = {"phone": phone, "otp_sent": issued.ok, "otp_expires_in": settings.OTP_TTL_MINUTES * 60}
    # Only the explicit test mode echoes the code back to the client
    if settings.OTP_DETERMINISTIC_CODE_FOR_TESTING and issued.code:
        data["otp"] = issued.code
    return data


def get_current_account_id(request: Request, credentials: HTTPAuthorizationCredentials = Depends(oauth2_scheme)) -> str:
    token = credentials.credentials if credentials and credentials.credentials else request.cookies.get("access_token")
    if not token:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    payload = decode_jwt_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return payload["sub"]


@router.post("/register", response_model=EnvelopeResponse, status_code=201)
def register(payload: RegisterRequest, accounts: AccountVerificationService = Depends(get_account_service)):
    account, issued = accounts.register(payload.name, payload.email, payload.phone, payload.password, payload.user_type)
    message = "Registration successful. Please verify your phone number."
    if not issued.ok:
        message = "Registration successful, but the OTP could not be sent. Please request a new one."
    data = _otp_data(account.phone, issued)
    data["user"] = AccountResponse.from_dto(account).model_dump()
    return create_success_response(message, data)


@router.post("/otp/send", response_model=EnvelopeResponse)
def send_otp(payload: PhoneRequest, accounts: AccountVerificationService = Depends(get_account_service)):
    issued = accounts.send_code(payload.phone)
    return create_success_response("OTP sent to your phone!", _otp_data(payload.phone, issued))


@router.post("/otp/resend", response_model=EnvelopeResponse)
def resend_otp(payload: PhoneRequest, accounts: AccountVerificationService = Depends(get_account_service)):
    issued = accounts.resend_code(payload.phone)
    return create_success_response("New OTP sent successfully!", _otp_data(payload.phone, issued))


@router.post("/otp/verify", response_model=EnvelopeResponse)
def verify_otp(payload: VerifyOTPRequest, accounts: AccountVerificationService = Depends(get_account_service)):
    account, token = accounts.verify_phone(payload.phone, payload.otp)
    return create_success_response(
        "Phone verified successfully! You can now login.",
        {"user": AccountResponse.from_dto(account).model_dump(), "access_token": token, "token_type": "bearer"},
    )


@router.post("/login", response_model=EnvelopeResponse)
def login(payload: LoginRequest, accounts: AccountVerificationService = Depends(get_account_service)):
    account, token = accounts.login(payload.email, payload.password)
    return create_success_response(
        "Login successful",
        {"user": AccountResponse.from_dto(account).model_dump(), "access_token": token, "token_type": "bearer"},
    )


@router.get("/me", response_model=EnvelopeResponse)
def me(account_id: str = Depends(get_current_account_id),
       accounts: AccountVerificationService = Depends(get_account_service)):
    account = accounts.get_account(account_id)
    return create_success_response("OK", {"user": AccountResponse.from_dto(account).model_dump()})
