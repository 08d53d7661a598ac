"""
Two-phase phone verification: send a one-time code, then check it.

The service keeps no state between the two calls. Code validity, expiry
and attempt limits are whatever the gateway enforces.
"""

import logging
from typing import Optional

from booking_engine.errors import ExternalServiceError, ValidationError
from booking_engine.gateways.verification_gateway import VerificationGateway
from booking_engine.schemas.verification_schema import (
    SendCodeResult,
    VerificationOutcome,
    VerifyAction,
)
from booking_engine.utils import is_valid_phone, mask_phone

logger = logging.getLogger(__name__)


class PhoneVerificationService:
    """Thin policy layer over a verification gateway."""

    def __init__(self, gateway: VerificationGateway, allow_mock_codes: bool = False) -> None:
        self.gateway = gateway
        self.allow_mock_codes = allow_mock_codes

    async def send_code(self, phone: str) -> SendCodeResult:
        """
        Ask the gateway to deliver a code to ``phone``.

        Returns:
            SendCodeResult. ``mock_code`` is set only when the gateway runs
            without a provider and this deployment allows echoing codes.

        A number that fails the local digit-count check never reaches the
        gateway and is reported against the ``guest_phone`` field, so the
        form can mark it. A number that passes here but that the provider
        refuses still comes back as ``ExternalServiceError``.

        Raises:
            ValidationError: If the phone number is malformed.
            ExternalServiceError: If the gateway is unreachable or rejects the number.
        """
        if not is_valid_phone(phone):
            raise ValidationError("Please enter a valid phone number", field="guest_phone")

        response = await self.gateway.invoke(VerifyAction.SEND, phone)

        mock_code: Optional[str] = None
        if response.mock_verification_code:
            if self.allow_mock_codes:
                mock_code = response.mock_verification_code
            else:
                logger.warning(
                    "Gateway returned a mock code for %s but mock codes are disabled",
                    mask_phone(phone),
                )

        logger.info("Verification code dispatched to %s", mask_phone(phone))
        return SendCodeResult(dispatched=True, mock_code=mock_code)

    async def check_code(self, phone: str, code: str) -> VerificationOutcome:
        """Check ``code`` for ``phone`` in one gateway round trip.

        A wrong code is a normal REJECTED outcome; only gateway failures raise.
        """
        code = (code or "").strip()
        if not code:
            raise ValidationError("Please enter the verification code", field="code")

        try:
            response = await self.gateway.invoke(VerifyAction.CHECK, phone, code)
        except ExternalServiceError:
            logger.warning("Verification check for %s failed at the gateway", mask_phone(phone))
            raise

        if response.verified:
            logger.info("Phone %s verified", mask_phone(phone))
            return VerificationOutcome.VERIFIED
        logger.info("Verification code rejected for %s", mask_phone(phone))
        return VerificationOutcome.REJECTED
