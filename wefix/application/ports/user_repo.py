from typing import Protocol, Optional
from datetime import datetime

STATUS_PENDING_VERIFICATION = "pending_verification"
STATUS_ACTIVE = "active"


class AccountDto:
    def __init__(self, id: str, name: str, email: str, phone: str, user_type: str,
                 password_hash: str, phone_verified: bool, status: str,
                 created_at: datetime, updated_at: datetime):
        self.id = id
        self.name = name
        self.email = email
        self.phone = phone
        self.user_type = user_type
        self.password_hash = password_hash
        self.phone_verified = phone_verified
        self.status = status
        self.created_at = created_at
        self.updated_at = updated_at


class UserRepository(Protocol):
    def get_by_phone(self, phone: str) -> Optional[AccountDto]:
        ...

    def get_by_email(self, email: str) -> Optional[AccountDto]:
        ...

    def get_by_id(self, account_id: str) -> Optional[AccountDto]:
        ...

    def create(self, name: str, email: str, phone: str, password_hash: str, user_type: str) -> AccountDto:
        ...

    def update_verification(self, account_id: str, phone_verified: bool, status: str) -> None:
        ...
