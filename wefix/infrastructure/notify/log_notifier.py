import logging

from ...application.ports.notifier import Notifier


class LoggingNotifier(Notifier):
    """Development notifier: writes the code to the log instead of sending an SMS."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def send(self, phone: str, code: str) -> None:
        self._logger.warning(f"SMS delivery not configured; OTP for {phone}: {code}")
