"""Pydantic schemas for request/response validation and domain types."""

from provenance.schemas.attestation import (
    AttestationCallback,
    AttestationOutcome,
    AttestationRequest,
    AttestationState,
    AttestationStatus,
    MerkleProof,
    NetworkStats,
    ProofVerificationRequest,
    ProofVerificationResult,
)
from provenance.schemas.challenge import (
    Challenge,
    ChallengeCreate,
    ChallengeResolution,
    ChallengeStatus,
)
from provenance.schemas.generation import GenerationRequest, GenerationResult
from provenance.schemas.verification import (
    ClaimSubmission,
    PollSummary,
    Verification,
    VerificationPage,
    VerificationStats,
    VerificationStatus,
)

__all__ = [
    "ClaimSubmission", "Verification", "VerificationPage", "VerificationStats",
    "VerificationStatus", "PollSummary",
    "Challenge", "ChallengeCreate", "ChallengeResolution", "ChallengeStatus",
    "AttestationCallback", "AttestationOutcome", "AttestationRequest",
    "AttestationState", "AttestationStatus", "MerkleProof", "NetworkStats",
    "ProofVerificationRequest", "ProofVerificationResult",
    "GenerationRequest", "GenerationResult",
]
