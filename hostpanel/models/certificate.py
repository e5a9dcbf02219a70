from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CertificateStatus(str, Enum):
    REQUESTED = "requested"
    ISSUED = "issued"
    FAILED = "failed"
    RENEWING = "renewing"


class CertificateRecord(BaseModel):
    """Last known certificate state for a single domain."""

    domain: str
    email: Optional[str] = Field(None, description="Contact address given to the ACME client")
    status: CertificateStatus
    last_attempt: datetime = Field(..., description="When the last request or renewal started")
    last_error: Optional[str] = Field(None, description="Error of the last failed attempt")


class CertificateRequest(BaseModel):
    domain: str = Field(..., description="Domain to request a certificate for")
    email: str = Field(..., description="Registration and expiry notice address")
