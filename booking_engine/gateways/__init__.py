from booking_engine.gateways.sms_gateway import (
    LoggingSmsGateway,
    SmsGateway,
    TwilioSmsGateway,
    build_sms_gateway,
)
from booking_engine.gateways.verification_gateway import (
    InMemoryVerificationGateway,
    TwilioVerifyGateway,
    VerificationGateway,
    build_verification_gateway,
)

__all__ = [
    "SmsGateway", "TwilioSmsGateway", "LoggingSmsGateway", "build_sms_gateway",
    "VerificationGateway", "TwilioVerifyGateway", "InMemoryVerificationGateway",
    "build_verification_gateway",
]
