"""Challenge ORM model — a dispute filed against a verified record."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from provenance.database import Base
from provenance.models.verification import utcnow


class ChallengeModel(Base):
    __tablename__ = "challenges"

    id = Column(String(40), primary_key=True)
    verification_id = Column(String(40), ForeignKey("verifications.id"), nullable=False, index=True)

    challenger_identity = Column(String, nullable=False, index=True)
    reason = Column(Text, nullable=False)
    evidence = Column(JSON)

    status = Column(String, nullable=False, default="pending")  # ChallengeStatus value
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = Column(DateTime(timezone=True))
    resolution_note = Column(Text)

    # Relationships
    verification = relationship("VerificationModel", back_populates="challenges")

    def __repr__(self) -> str:
        return f"<Challenge id={self.id} verification_id={self.verification_id} status={self.status}>"
