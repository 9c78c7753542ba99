import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext

from .config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

E164_PATTERN = re.compile(r"^\+\d{7,15}$")


# =========================
# Phone numbers
# =========================
def normalize_phone(raw: str, default_country_code: Optional[str] = None) -> str:
    """Normalize a user-entered phone number to E.164.

    ``0712345678`` with country code ``+94`` becomes ``+94712345678``; ``0094...``
    is treated like ``+94...``. Raises ``ValueError`` when the result is not a
    plausible E.164 number.
    """
    country_code = default_country_code or settings.DEFAULT_COUNTRY_CODE
    phone = re.sub(r"[^\d+]", "", str(raw or "").strip())
    if phone.startswith("00"):
        phone = "+" + phone[2:]
    elif phone.startswith("0"):
        phone = country_code + phone[1:]
    elif phone and not phone.startswith("+"):
        phone = "+" + phone
    if not E164_PATTERN.match(phone):
        raise ValueError("Invalid phone number format. Must include country code (e.g., +94712345678)")
    return phone


# =========================
# Passwords
# =========================
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


# =========================
# JWT Token Handling
# =========================
def create_access_token(account_id: str, expires_minutes: Optional[int] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": account_id, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_jwt_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT; returns None for expired or invalid tokens."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
