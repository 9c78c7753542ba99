# wefix/db/models/users/user.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone
import uuid

from ....application.ports.user_repo import STATUS_PENDING_VERIFICATION


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(max_length=255, unique=True, index=True)
    phone: str = Field(max_length=20, unique=True, index=True)
    password_hash: str = Field(max_length=255)
    user_type: str = Field(max_length=20)  # consumer | provider
    phone_verified: bool = Field(default=False)
    status: str = Field(max_length=30, default=STATUS_PENDING_VERIFICATION)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
