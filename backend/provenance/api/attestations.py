"""Attestation endpoints — network callbacks, proof checks and manual polling."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from provenance.dependencies import get_orchestrator
from provenance.logging_config import get_logger
from provenance.schemas.attestation import (
    AttestationCallback,
    MerkleProof,
    ProofVerificationRequest,
    ProofVerificationResult,
)
from provenance.schemas.verification import PollSummary, Verification
from provenance.services.orchestrator import VerificationOrchestrator

logger = get_logger(__name__)
router = APIRouter()


@router.post("/callback", response_model=Verification)
def attestation_callback(
    callback: AttestationCallback,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> Verification:
    """Webhook the attestation network calls with a final outcome.

    Duplicate and stale callbacks are accepted and leave the record as is,
    so the network can safely redeliver.
    """
    logger.info(
        "attestation_callback_received",
        attestation_id=callback.attestation_id,
        outcome=callback.outcome.value,
        verification_id=callback.verification_id,
    )
    return orchestrator.resolve(
        callback.attestation_id,
        callback.outcome,
        callback.proof,
        verification_id=callback.verification_id,
    )


@router.post("/verify", response_model=ProofVerificationResult)
def verify_proof(
    request: ProofVerificationRequest,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> ProofVerificationResult:
    return orchestrator.verify_proof(request.claim_digest, request.proof)


@router.post("/poll", response_model=PollSummary)
def poll_attestations(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> PollSummary:
    """Run one polling sweep over pending verifications now."""
    return orchestrator.poll_pending(limit=limit)


@router.get("/{attestation_id}/proof", response_model=MerkleProof)
def get_attestation_proof(
    attestation_id: str,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> MerkleProof:
    """Merkle inclusion proof for one of this service's attestations.

    Raises:
        NotFound: 404 if no verification ever used ``attestation_id``.
    """
    return orchestrator.fetch_proof(attestation_id)
