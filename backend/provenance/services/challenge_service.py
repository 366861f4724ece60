"""Disputes against verified claims.

Opening a challenge and flipping the verification ``verified → challenged``
happen in one store transaction. A second challenge on the same record fails
with ``NotChallengeable`` because the record is no longer ``verified``.
"""

from datetime import datetime, timezone
from typing import List

from provenance.domain.ids import new_challenge_id
from provenance.domain.transitions import ensure_challenge_transition
from provenance.errors import InvalidStateTransition, NotFound
from provenance.logging_config import get_logger
from provenance.models.challenge import ChallengeModel
from provenance.schemas.challenge import Challenge, ChallengeCreate, ChallengeResolution, ChallengeStatus
from provenance.store import VerificationStore

logger = get_logger(__name__)


class ChallengeManager:
    def __init__(self, store: VerificationStore):
        self.store = store

    def challenge(self, verification_id: str, request: ChallengeCreate) -> Challenge:
        now = datetime.now(timezone.utc)
        challenge_id = new_challenge_id()
        created = self.store.create_challenge(
            ChallengeModel(
                id=challenge_id,
                verification_id=verification_id,
                challenger_identity=request.challenger_identity,
                reason=request.reason,
                evidence=request.evidence,
                status=ChallengeStatus.PENDING.value,
                timestamp=now,
            ),
            metadata={"challenged_at": now.isoformat(), "challenge_id": challenge_id},
        )
        logger.info(
            "verification_challenged",
            verification_id=verification_id,
            challenge_id=challenge_id,
            challenger=request.challenger_identity,
        )
        return created

    def resolve_challenge(self, challenge_id: str, resolution: ChallengeResolution) -> Challenge:
        """Close a pending challenge as ``resolved`` or ``upheld``.

        The verification keeps its ``challenged`` status either way.
        """
        current = self.get_challenge(challenge_id)
        ensure_challenge_transition(current.status, resolution.status)

        applied = self.store.conditional_update_challenge(
            challenge_id,
            ChallengeStatus.PENDING,
            {
                "status": resolution.status,
                "resolved_at": datetime.now(timezone.utc),
                "resolution_note": resolution.note,
            },
        )
        if not applied:
            latest = self.get_challenge(challenge_id)
            raise InvalidStateTransition(latest.status.value, resolution.status.value)

        logger.info(
            "challenge_resolved",
            challenge_id=challenge_id,
            verification_id=current.verification_id,
            status=resolution.status.value,
        )
        return self.get_challenge(challenge_id)

    def get_challenge(self, challenge_id: str) -> Challenge:
        challenge = self.store.get_challenge(challenge_id)
        if challenge is None:
            raise NotFound(f"Challenge {challenge_id} not found")
        return challenge

    def list_for_verification(self, verification_id: str) -> List[Challenge]:
        if self.store.get(verification_id) is None:
            raise NotFound(f"Verification {verification_id} not found")
        return self.store.list_challenges(verification_id)
