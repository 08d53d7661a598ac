"""
Outbound booking confirmation SMS.

Gateways report delivery problems in the returned ``NotificationOutcome``
and never raise: a confirmation message is best effort.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional, Protocol

import httpx

from booking_engine.config import AppConfig, TwilioConfig
from booking_engine.schemas.booking_schema import NotificationOutcome
from booking_engine.utils import mask_phone, to_e164

logger = logging.getLogger(__name__)

TWILIO_API_BASE_URL = "https://api.twilio.com/2010-04-01"


class SmsGateway(Protocol):
    async def send_booking_sms(
        self,
        phone: str,
        name: str,
        code: str,
        booking_id: str,
        booking_date: date,
        booking_time: time,
    ) -> NotificationOutcome:
        ...


def build_confirmation_message(
    name: str, code: str, booking_date: date, booking_time: time
) -> str:
    return (
        f"Hello {name}, your booking with code {code} is confirmed for "
        f"{booking_date.isoformat()} at {booking_time.strftime('%H:%M')}. "
        "Use this code to manage your booking at any time."
    )


class TwilioSmsGateway:
    """Sends messages through the Twilio Messages API."""

    def __init__(
        self,
        config: TwilioConfig,
        timeout: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self.http = http or httpx.AsyncClient(
            base_url=TWILIO_API_BASE_URL,
            auth=httpx.BasicAuth(config.account_sid, config.auth_token),
            timeout=httpx.Timeout(timeout),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def send_booking_sms(
        self,
        phone: str,
        name: str,
        code: str,
        booking_id: str,
        booking_date: date,
        booking_time: time,
    ) -> NotificationOutcome:
        to = to_e164(phone, self.config.default_country_code)
        body = build_confirmation_message(name, code, booking_date, booking_time)
        try:
            response = await self.http.post(
                f"/Accounts/{self.config.account_sid}/Messages.json",
                data={"From": self.config.from_number, "To": to, "Body": body},
            )
        except httpx.HTTPError as exc:
            logger.warning("SMS for booking %s not sent: %s", booking_id, exc)
            return NotificationOutcome(success=False, message=f"SMS gateway unreachable: {exc}")

        if not response.is_success:
            try:
                detail = response.json().get("message")
            except ValueError:
                detail = None
            message = detail or f"Failed to send SMS (status {response.status_code})"
            logger.warning("SMS for booking %s rejected: %s", booking_id, message)
            return NotificationOutcome(success=False, message=message)

        logger.info(
            "Confirmation SMS for booking %s sent to %s (sid: %s)",
            booking_id, mask_phone(to), response.json().get("sid"),
        )
        return NotificationOutcome(success=True, message="SMS sent successfully")


@dataclass
class SentMessage:
    phone: str
    booking_id: str
    body: str


class LoggingSmsGateway:
    """Mock-mode gateway for deployments without SMS credentials."""

    def __init__(self) -> None:
        self.sent: list[SentMessage] = []

    async def send_booking_sms(
        self,
        phone: str,
        name: str,
        code: str,
        booking_id: str,
        booking_date: date,
        booking_time: time,
    ) -> NotificationOutcome:
        body = build_confirmation_message(name, code, booking_date, booking_time)
        self.sent.append(SentMessage(phone=phone, booking_id=booking_id, body=body))
        logger.info("SMS provider not configured. Would send to %s", mask_phone(phone))
        return NotificationOutcome(
            success=True,
            message="SMS would be sent (mock mode)",
            provider_configured=False,
        )


def build_sms_gateway(config: AppConfig) -> SmsGateway:
    """Pick Twilio when credentials are present, otherwise mock mode."""
    if config.twilio.sms_configured:
        return TwilioSmsGateway(config.twilio, timeout=config.gateways.request_timeout_sec)
    return LoggingSmsGateway()
