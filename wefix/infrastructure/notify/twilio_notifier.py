from twilio.rest import Client
from typing import Optional
from ...config import settings
from ...application.ports.notifier import Notifier

MESSAGE_TEMPLATE = "Your WeFix verification code is: {code}. It expires in {minutes} minutes."


class TwilioSmsNotifier(Notifier):
    def __init__(self, client: Optional[Client] = None, from_number: Optional[str] = None):
        self.client = client or Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        self.from_number = from_number or settings.TWILIO_PHONE_NUMBER

    def send(self, phone: str, code: str) -> None:
        if not self.from_number:
            raise RuntimeError("Twilio sender phone number not configured")
        body = MESSAGE_TEMPLATE.format(code=code, minutes=settings.OTP_TTL_MINUTES)
        self.client.messages.create(to=phone, from_=self.from_number, body=body)
