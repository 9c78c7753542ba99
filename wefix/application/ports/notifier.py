from typing import Protocol


class Notifier(Protocol):
    def send(self, phone: str, code: str) -> None:
        ...
