"""Challenge repository."""

from typing import List

from sqlalchemy.orm import Session

from provenance.models.challenge import ChallengeModel
from provenance.repositories.base import BaseRepository


class ChallengeRepository(BaseRepository[ChallengeModel]):
    def __init__(self, db: Session):
        super().__init__(db, ChallengeModel)

    def get_for_verification(self, verification_id: str) -> List[ChallengeModel]:
        return (
            self.db.query(self.model)
            .filter(self.model.verification_id == verification_id)
            .order_by(self.model.timestamp)
            .all()
        )

