"""Verification ORM model."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from provenance.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationModel(Base):
    __tablename__ = "verifications"

    id = Column(String(40), primary_key=True)

    # ── The claim (immutable after creation) ─────────────────────────
    prompt = Column(Text, nullable=False)
    output = Column(Text, nullable=False)
    model = Column(String, nullable=False, index=True)
    output_hash = Column(String(64), nullable=False, index=True)
    submitter_identity = Column(String, nullable=False, index=True)
    signature = Column(String)
    signed_message = Column(Text)

    # ── Protocol state ───────────────────────────────────────────────
    status = Column(String, nullable=False, default="pending", index=True)  # VerificationStatus value
    attestation_id = Column(String, index=True)
    proof = Column(JSON)
    retry_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = Column(DateTime(timezone=True))

    # "metadata" is reserved on declarative classes, so the attribute is renamed
    meta = Column("metadata", JSON, nullable=False, default=dict)

    # Relationships
    challenges = relationship(
        "ChallengeModel", back_populates="verification", order_by="ChallengeModel.timestamp"
    )

    def __repr__(self) -> str:
        return f"<Verification id={self.id} status={self.status} model={self.model}>"
