from twilio.rest import Client
from appointly.core.config import (
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_PHONE_NUMBER,
    TWILIO_WHATSAPP_NUMBER,
)


class TwilioClient:
    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        phone_number: str | None = None,
        whatsapp_number: str | None = None,
    ):
        self.account_sid = account_sid or TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or TWILIO_AUTH_TOKEN
        self.phone_number = phone_number or TWILIO_PHONE_NUMBER
        self.whatsapp_number = whatsapp_number or TWILIO_WHATSAPP_NUMBER
        self._client: Client | None = None

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    @property
    def client(self) -> Client:
        # Built on first use so an unconfigured install can still import this module
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send_sms(self, to: str, message: str, from_: str | None = None):
        """Send an SMS to the specified phone number"""
        from_number = from_ or self.phone_number
        if not from_number:
            raise ValueError("Missing Twilio from number for SMS.")
        message = self.client.messages.create(
            to=to,
            from_=from_number,
            body=message
        )
        return message

    def send_whatsapp(self, to: str, message: str, from_: str | None = None):
        """Send a WhatsApp message through the Twilio WhatsApp sender"""
        from_number = from_ or self.whatsapp_number
        if not from_number:
            raise ValueError("Missing Twilio WhatsApp sender number.")
        return self.client.messages.create(
            to=f"whatsapp:{to}",
            from_=f"whatsapp:{from_number}",
            body=message
        )

#Initialize the client
twilio_client = TwilioClient()
