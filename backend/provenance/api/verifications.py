"""Verification endpoints — submit claims, read status, retry rejections.

Protocol errors raised by the orchestrator (authentication, integrity, illegal
transitions, unknown ids) are turned into HTTP responses by the exception
handler registered in ``provenance.main``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from provenance.dependencies import get_orchestrator
from provenance.logging_config import get_logger
from provenance.schemas.verification import (
    ClaimSubmission,
    Verification,
    VerificationPage,
    VerificationStats,
    VerificationStatus,
)
from provenance.services.orchestrator import VerificationOrchestrator

logger = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=Verification, status_code=201)
def submit_verification(
    claim: ClaimSubmission,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> Verification:
    """Submit a claim for verification.

    Returns the stored record in ``pending``; attestation continues in the
    background. Poll ``GET /verifications/{id}`` for the outcome.
    """
    logger.info(
        "verification_submit_requested",
        submitter=claim.submitter_identity,
        model=claim.model,
        signed=claim.signature is not None,
    )
    return orchestrator.submit(claim)


@router.get("", response_model=VerificationPage)
def list_verifications(
    submitter: str = Query(..., min_length=1),
    status: Optional[VerificationStatus] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> VerificationPage:
    """List a submitter's verifications, newest first.

    Args:
        submitter: Submitter identity (address), matched case-insensitively.
        status: Optional status filter.
        page: 1-based page number.
        limit: Page size (max 100).
    """
    result = orchestrator.list_for_submitter(submitter, status=status, page=page, limit=limit)
    logger.info(
        "verification_list_completed",
        submitter=submitter,
        status=status.value if status else None,
        total=result.total,
    )
    return result


@router.get("/stats", response_model=VerificationStats)
def verification_stats(
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> VerificationStats:
    return orchestrator.stats()


@router.get("/{verification_id}", response_model=Verification)
def get_verification(
    verification_id: str,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> Verification:
    return orchestrator.get(verification_id)


@router.post("/{verification_id}/retry", response_model=Verification)
def retry_verification(
    verification_id: str,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> Verification:
    """Resubmit a rejected verification for attestation (409 from any other status)."""
    logger.info("verification_retry_requested", verification_id=verification_id)
    return orchestrator.retry(verification_id)
