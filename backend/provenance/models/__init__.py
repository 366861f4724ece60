"""SQLAlchemy ORM models, imported here so Base.metadata sees them."""

from provenance.models.challenge import ChallengeModel
from provenance.models.verification import VerificationModel

__all__ = [
    "VerificationModel",
    "ChallengeModel",
]
