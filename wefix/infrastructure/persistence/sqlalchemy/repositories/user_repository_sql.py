from datetime import datetime, timezone
from typing import Optional
from sqlmodel import Session, select

from .....db.models import User
from .....application.ports.user_repo import UserRepository, AccountDto, STATUS_PENDING_VERIFICATION


class SqlUserRepository(UserRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, user: User) -> AccountDto:
        return AccountDto(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            user_type=user.user_type,
            password_hash=user.password_hash,
            phone_verified=bool(user.phone_verified),
            status=user.status,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    def get_by_phone(self, phone: str) -> Optional[AccountDto]:
        user = self.session.exec(select(User).where(User.phone == phone)).first()
        return self._to_dto(user) if user else None

    def get_by_email(self, email: str) -> Optional[AccountDto]:
        user = self.session.exec(select(User).where(User.email == email)).first()
        return self._to_dto(user) if user else None

    def get_by_id(self, account_id: str) -> Optional[AccountDto]:
        user = self.session.exec(select(User).where(User.id == account_id)).first()
        return self._to_dto(user) if user else None

    def create(self, name: str, email: str, phone: str, password_hash: str, user_type: str) -> AccountDto:
        user = User(
            name=name,
            email=email,
            phone=phone,
            password_hash=password_hash,
            user_type=user_type,
            phone_verified=False,
            status=STATUS_PENDING_VERIFICATION,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return self._to_dto(user)

    def update_verification(self, account_id: str, phone_verified: bool, status: str) -> None:
        user = self.session.exec(select(User).where(User.id == account_id)).first()
        if not user:
            raise LookupError(f"Account {account_id} not found")
        user.phone_verified = phone_verified
        user.status = status
        user.updated_at = datetime.now(timezone.utc)
        self.session.add(user)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
