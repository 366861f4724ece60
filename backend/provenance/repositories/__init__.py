"""Data-access repositories."""

from provenance.repositories.base import BaseRepository
from provenance.repositories.challenge_repo import ChallengeRepository
from provenance.repositories.verification_repo import VerificationRepository

__all__ = [
    "BaseRepository",
    "VerificationRepository",
    "ChallengeRepository",
]
