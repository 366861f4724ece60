"""Verification schemas and supporting enums."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    CHALLENGED = "challenged"
    REJECTED = "rejected"


class ClaimSubmission(BaseModel):
    """A submitter's assertion that ``output`` came from ``model`` for ``prompt``."""

    prompt: str = Field(min_length=1, max_length=2000)
    output: str = Field(min_length=1, max_length=10000)
    model: str = Field(min_length=1)
    submitter_identity: str = Field(min_length=1)

    output_hash: Optional[str] = None  # caller's expected digest; computed when absent
    signature: Optional[str] = None
    message: Optional[str] = None  # signed message; derived from the hash when absent

    metadata: Dict[str, Any] = {}  # e.g. confidence, client attestation data


class Verification(BaseModel):
    id: str

    prompt: str
    output: str
    model: str
    output_hash: str
    submitter_identity: str
    signature: Optional[str] = None
    signed_message: Optional[str] = None

    status: VerificationStatus
    attestation_id: Optional[str] = None
    proof: Optional[Any] = None
    retry_count: int = 0

    created_at: datetime
    resolved_at: Optional[datetime] = None

    metadata: Dict[str, Any] = {}


class VerificationPage(BaseModel):
    """One page of a submitter's verification history."""

    verifications: List[Verification]
    total: int
    page: int
    total_pages: int


class VerificationStats(BaseModel):
    total_verifications: int
    pending_count: int
    verified_count: int
    challenged_count: int
    rejected_count: int
    success_rate: float  # verified / total, in percent


class PollSummary(BaseModel):
    """Outcome counts for one sweep of ``VerificationOrchestrator.poll_pending``."""

    checked: int = 0
    verified: int = 0
    rejected: int = 0
    still_pending: int = 0
    redispatched: int = 0
    errors: int = 0
