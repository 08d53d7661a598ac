"""Phone verification data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class VerifyAction(str, Enum):
    SEND = "send"
    CHECK = "check"


class VerificationOutcome(str, Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"


class VerifyGatewayResponse(BaseModel):
    """Raw answer of a verification gateway."""

    mock_verification_code: Optional[str] = None
    verified: Optional[bool] = None
    status: Optional[str] = None
    provider_configured: bool = True


class SendCodeResult(BaseModel):
    """What the flow learns after asking for a code to be sent."""

    dispatched: bool
    mock_code: Optional[str] = None


@dataclass
class VerificationSession:
    """
    Per-flow verification progress.

    Created on send, resolved on check. Never carries the code itself.
    """
    phone: str
    dispatched: bool = False
    outcome: Optional[VerificationOutcome] = None
    attempts: int = 0
