# wefix/schemas/auth.py
from pydantic import BaseModel, Field, validator
from typing import Optional, Dict, Any
import re

from ..utils import normalize_phone

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, description="User's full name")
    email: str = Field(..., max_length=255)
    phone: str = Field(..., description="Phone number; local numbers get the default country code")
    password: str = Field(..., min_length=6, max_length=72)
    user_type: str = Field(..., description="'consumer' or 'provider'")

    @validator('name')
    def validate_name(cls, v):
        return v.strip()

    @validator('email')
    def validate_email(cls, v):
        v = v.strip().lower()
        if not re.match(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', v):
            raise ValueError('Please include a valid email')
        return v

    @validator('phone')
    def validate_phone(cls, v):
        return normalize_phone(v)

    @validator('user_type')
    def validate_user_type(cls, v):
        if v not in ('consumer', 'provider'):
            raise ValueError('User type must be either "consumer" or "provider"')
        return v

class PhoneRequest(BaseModel):
    phone: str = Field(..., description="Phone number with country code")

    @validator('phone')
    def validate_phone(cls, v):
        return normalize_phone(v)

class VerifyOTPRequest(PhoneRequest):
    otp: str = Field(..., description="6-digit OTP")

    @validator('otp')
    def validate_otp(cls, v):
        v = v.strip()
        if not v.isdigit():
            raise ValueError('OTP must contain digits only')
        return v

class LoginRequest(BaseModel):
    email: str
    password: str

    @validator('email')
    def validate_email(cls, v):
        return v.strip().lower()

class AccountResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    user_type: str
    phone_verified: bool
    status: str

    @classmethod
    def from_dto(cls, account) -> "AccountResponse":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            phone=account.phone,
            user_type=account.user_type,
            phone_verified=account.phone_verified,
            status=account.status,
        )

class EnvelopeResponse(BaseModel):
    success: bool
    message: str
    data: Dict[str, Any] = {}

class ErrorResponse(BaseModel):
    success: bool = False
    data: Optional[Dict[str, Any]] = None
    error: str
