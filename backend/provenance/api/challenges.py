"""Challenge endpoints — dispute verified claims and settle the disputes.

Two routers: ``verification_router`` is mounted under ``/verifications`` for
the per-verification collection, ``router`` under ``/challenges`` for single
challenges.
"""

from typing import List

from fastapi import APIRouter, Depends

from provenance.dependencies import get_challenge_manager
from provenance.logging_config import get_logger
from provenance.schemas.challenge import Challenge, ChallengeCreate, ChallengeResolution
from provenance.services.challenge_service import ChallengeManager

logger = get_logger(__name__)
router = APIRouter()
verification_router = APIRouter()


@verification_router.post("/{verification_id}/challenges", response_model=Challenge, status_code=201)
def challenge_verification(
    verification_id: str,
    request: ChallengeCreate,
    manager: ChallengeManager = Depends(get_challenge_manager),
) -> Challenge:
    """Open a challenge against a verified claim.

    Returns 409 when the verification is not ``verified`` (including when it
    has already been challenged).
    """
    logger.info(
        "challenge_requested",
        verification_id=verification_id,
        challenger=request.challenger_identity,
    )
    return manager.challenge(verification_id, request)


@verification_router.get("/{verification_id}/challenges", response_model=List[Challenge])
def list_challenges(
    verification_id: str,
    manager: ChallengeManager = Depends(get_challenge_manager),
) -> List[Challenge]:
    return manager.list_for_verification(verification_id)


@router.get("/{challenge_id}", response_model=Challenge)
def get_challenge(
    challenge_id: str,
    manager: ChallengeManager = Depends(get_challenge_manager),
) -> Challenge:
    return manager.get_challenge(challenge_id)


@router.post("/{challenge_id}/resolve", response_model=Challenge)
def resolve_challenge(
    challenge_id: str,
    resolution: ChallengeResolution,
    manager: ChallengeManager = Depends(get_challenge_manager),
) -> Challenge:
    logger.info("challenge_resolution_requested", challenge_id=challenge_id, status=resolution.status.value)
    return manager.resolve_challenge(challenge_id, resolution)
