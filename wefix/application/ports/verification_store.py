from dataclasses import dataclass
from datetime import datetime
from typing import ContextManager, Optional, Protocol


class VerificationStoreError(Exception):
    """Raised by a store when its backend cannot be read, written or locked."""


@dataclass
class VerificationRecord:
    phone: str
    code: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0
    verified: bool = False


class VerificationStore(Protocol):
    def get(self, phone: str) -> Optional[VerificationRecord]:
        ...

    def put(self, record: VerificationRecord, ttl_seconds: int) -> None:
        ...

    def delete(self, phone: str) -> None:
        ...

    def lock(self, phone: str) -> ContextManager[None]:
        ...
