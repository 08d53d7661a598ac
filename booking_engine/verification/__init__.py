from booking_engine.verification.service import PhoneVerificationService

__all__ = ["PhoneVerificationService"]
