"""Attestation network request/response shapes."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel


class AttestationOutcome(str, Enum):
    """Final outcome reported by the network for a claim."""

    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class AttestationState(str, Enum):
    """Status values returned when polling an attestation."""

    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"

    @property
    def is_final(self) -> bool:
        return self is not AttestationState.SUBMITTED


class AttestationRequest(BaseModel):
    """What the network receives for a claim: digests, never raw content."""

    verification_id: str
    prompt_hash: str
    output_hash: str
    claim_digest: str
    model: str
    submitter_identity: str
    timestamp: datetime


class AttestationStatus(BaseModel):
    attestation_id: str
    status: AttestationState
    merkle_root: Optional[str] = None
    proof: Optional[Any] = None
    timestamp: Optional[str] = None


class MerkleProof(BaseModel):
    merkle_root: str
    proof: List[str]
    leaf: str


class NetworkStats(BaseModel):
    total_attestations: int = 0
    confirmed_attestations: int = 0
    average_confirmation_time: float = 0.0
    network_health: str = "unknown"


class AttestationCallback(BaseModel):
    """Body of the webhook the attestation network calls on a final outcome."""

    attestation_id: str
    outcome: AttestationOutcome
    proof: Optional[Any] = None
    verification_id: Optional[str] = None


class ProofVerificationRequest(BaseModel):
    claim_digest: str
    proof: Any


class ProofVerificationResult(BaseModel):
    valid: bool
    timestamp: datetime
