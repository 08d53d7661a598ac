"""
Verification gateways: issue and check one-time phone codes.

``TwilioVerifyGateway`` talks to Twilio Verify over HTTP. When Twilio is not
configured, ``InMemoryVerificationGateway`` issues codes locally and hands
them back as a mock code so the guest flow can be exercised end to end.
"""

import logging
import secrets
from typing import Optional, Protocol

import httpx

from booking_engine.config import AppConfig, TwilioConfig
from booking_engine.errors import ExternalServiceError, ValidationError
from booking_engine.schemas.verification_schema import VerifyAction, VerifyGatewayResponse
from booking_engine.utils import mask_phone, normalize_phone, to_e164

logger = logging.getLogger(__name__)

TWILIO_VERIFY_BASE_URL = "https://verify.twilio.com/v2"
CODE_LENGTH = 6


class VerificationGateway(Protocol):
    async def invoke(
        self, action: VerifyAction, phone: str, code: Optional[str] = None
    ) -> VerifyGatewayResponse:
        ...


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    message = payload.get("message") if isinstance(payload, dict) else None
    return message or f"{fallback} (status {response.status_code})"


class TwilioVerifyGateway:
    """Twilio Verify v2 client. Code validity, expiry and attempt limits live at Twilio."""

    def __init__(
        self,
        config: TwilioConfig,
        timeout: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self.http = http or httpx.AsyncClient(
            base_url=TWILIO_VERIFY_BASE_URL,
            auth=httpx.BasicAuth(config.account_sid, config.auth_token),
            timeout=httpx.Timeout(timeout),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def invoke(
        self, action: VerifyAction, phone: str, code: Optional[str] = None
    ) -> VerifyGatewayResponse:
        if action == VerifyAction.SEND:
            return await self._send(phone)
        if not code:
            raise ValidationError("Missing verification code", field="code")
        return await self._check(phone, code)

    async def _post(self, path: str, data: dict[str, str]) -> httpx.Response:
        try:
            return await self.http.post(path, data=data)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Verification gateway unreachable: {exc}") from exc

    async def _send(self, phone: str) -> VerifyGatewayResponse:
        to = to_e164(phone, self.config.default_country_code)
        response = await self._post(
            f"/Services/{self.config.verify_service_sid}/Verifications",
            {"To": to, "Channel": "sms"},
        )
        if not response.is_success:
            raise ExternalServiceError(
                _error_message(response, "Error sending verification code")
            )
        status = response.json().get("status")
        logger.info("Verification code sent to %s (status: %s)", mask_phone(to), status)
        return VerifyGatewayResponse(status=status)

    async def _check(self, phone: str, code: str) -> VerifyGatewayResponse:
        to = to_e164(phone, self.config.default_country_code)
        response = await self._post(
            f"/Services/{self.config.verify_service_sid}/VerificationCheck",
            {"To": to, "Code": code},
        )
        # Twilio answers 404 once a verification is expired, used up or already approved.
        if response.status_code == 404:
            return VerifyGatewayResponse(verified=False, status="not_found")
        if not response.is_success:
            raise ExternalServiceError(
                _error_message(response, "Error checking verification code")
            )
        status = response.json().get("status")
        return VerifyGatewayResponse(verified=status == "approved", status=status)


class InMemoryVerificationGateway:
    """Local stand-in used when no verification provider is configured.

    Issued codes are returned as ``mock_verification_code`` instead of being
    delivered. A code is consumed by a successful check.
    """

    def __init__(self, fixed_code: Optional[str] = None) -> None:
        self._fixed_code = fixed_code
        self._pending: dict[str, str] = {}

    def _issue(self) -> str:
        if self._fixed_code:
            return self._fixed_code
        return "".join(secrets.choice("0123456789") for _ in range(CODE_LENGTH))

    async def invoke(
        self, action: VerifyAction, phone: str, code: Optional[str] = None
    ) -> VerifyGatewayResponse:
        key = normalize_phone(phone)
        if action == VerifyAction.SEND:
            issued = self._issue()
            self._pending[key] = issued
            logger.info("Mock verification code issued for %s", mask_phone(key))
            return VerifyGatewayResponse(
                mock_verification_code=issued, status="pending", provider_configured=False
            )

        if not code:
            raise ValidationError("Missing verification code", field="code")
        verified = self._pending.get(key) == code
        if verified:
            del self._pending[key]
        return VerifyGatewayResponse(
            verified=verified,
            status="approved" if verified else "pending",
            provider_configured=False,
        )


def build_verification_gateway(config: AppConfig) -> VerificationGateway:
    """Pick Twilio Verify when configured, otherwise the in-memory gateway."""
    if config.twilio.verify_configured:
        return TwilioVerifyGateway(config.twilio, timeout=config.gateways.request_timeout_sec)
    logger.warning("Twilio Verify not configured, verification codes run in mock mode")
    return InMemoryVerificationGateway()
