"""Challenge schemas and supporting enums."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ChallengeStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"  # dismissed; the verification stands
    UPHELD = "upheld"  # the dispute was valid


class ChallengeCreate(BaseModel):
    challenger_identity: str = Field(min_length=1)
    reason: str = Field(min_length=1, max_length=2000)
    evidence: Optional[Any] = None


class ChallengeResolution(BaseModel):
    status: ChallengeStatus
    note: Optional[str] = None


class Challenge(BaseModel):
    id: str
    verification_id: str
    challenger_identity: str
    reason: str
    evidence: Optional[Any] = None
    status: ChallengeStatus
    timestamp: datetime
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None

    model_config = {"from_attributes": True}
