"""Verification and challenge state machines.

Usage:
    from provenance.domain.transitions import ensure_transition
    from provenance.schemas.verification import VerificationStatus

    ensure_transition(VerificationStatus.REJECTED, VerificationStatus.PENDING)  # ok (retry)
    ensure_transition(VerificationStatus.VERIFIED, VerificationStatus.PENDING)  # raises
"""

from typing import Dict, FrozenSet, Union

from provenance.errors import InvalidStateTransition
from provenance.schemas.challenge import ChallengeStatus
from provenance.schemas.verification import VerificationStatus

VERIFICATION_TRANSITIONS: Dict[VerificationStatus, FrozenSet[VerificationStatus]] = {
    # attestation outcome
    VerificationStatus.PENDING: frozenset({VerificationStatus.VERIFIED, VerificationStatus.REJECTED}),
    # dispute
    VerificationStatus.VERIFIED: frozenset({VerificationStatus.CHALLENGED}),
    # explicit retry
    VerificationStatus.REJECTED: frozenset({VerificationStatus.PENDING}),
    VerificationStatus.CHALLENGED: frozenset(),
}

# Outcomes that end the attestation leg; duplicate callbacks against these are no-ops
RESOLVED_STATUSES = frozenset(
    {VerificationStatus.VERIFIED, VerificationStatus.REJECTED, VerificationStatus.CHALLENGED}
)

CHALLENGE_TRANSITIONS: Dict[ChallengeStatus, FrozenSet[ChallengeStatus]] = {
    ChallengeStatus.PENDING: frozenset({ChallengeStatus.RESOLVED, ChallengeStatus.UPHELD}),
    ChallengeStatus.RESOLVED: frozenset(),
    ChallengeStatus.UPHELD: frozenset(),
}


def can_transition(
    current: Union[VerificationStatus, str],
    target: Union[VerificationStatus, str],
) -> bool:
    return VerificationStatus(target) in VERIFICATION_TRANSITIONS[VerificationStatus(current)]


def ensure_transition(
    current: Union[VerificationStatus, str],
    target: Union[VerificationStatus, str],
) -> None:
    """Raise ``InvalidStateTransition`` unless ``current → target`` is legal."""
    if not can_transition(current, target):
        raise InvalidStateTransition(VerificationStatus(current).value, VerificationStatus(target).value)


def ensure_challenge_transition(
    current: Union[ChallengeStatus, str],
    target: Union[ChallengeStatus, str],
) -> None:
    current, target = ChallengeStatus(current), ChallengeStatus(target)
    if target not in CHALLENGE_TRANSITIONS[current]:
        raise InvalidStateTransition(current.value, target.value)
