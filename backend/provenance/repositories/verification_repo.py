"""Verification repository."""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import Text, cast, func
from sqlalchemy.orm import Session

from provenance.models.verification import VerificationModel
from provenance.repositories.base import BaseRepository


class VerificationRepository(BaseRepository[VerificationModel]):
    def __init__(self, db: Session):
        super().__init__(db, VerificationModel)

    def get_by_attestation_id(self, attestation_id: str) -> Optional[VerificationModel]:
        return (
            self.db.query(self.model)
            .filter(self.model.attestation_id == attestation_id)
            .first()
        )

    def get_by_previous_attestation_id(self, attestation_id: str) -> Optional[VerificationModel]:
        """Record whose ``previous_attestation_ids`` holds ``attestation_id``.

        The JSON text match only narrows the candidates; membership is
        checked on the decoded list.
        """
        candidates = (
            self.db.query(self.model)
            .filter(cast(self.model.meta, Text).contains(f'"{attestation_id}"', autoescape=True))
            .all()
        )
        for row in candidates:
            if attestation_id in (row.meta or {}).get("previous_attestation_ids", []):
                return row
        return None

    def get_for_submitter(
        self,
        submitter_identity: str,
        *,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[VerificationModel]:
        query = self._submitter_query(submitter_identity, status)
        return (
            query.order_by(self.model.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_for_submitter(self, submitter_identity: str, *, status: Optional[str] = None) -> int:
        return self._submitter_query(submitter_identity, status).count()

    def count_by_status(self) -> Dict[str, int]:
        rows = (
            self.db.query(self.model.status, func.count(self.model.id))
            .group_by(self.model.status)
            .all()
        )
        return {status: count for status, count in rows}

    def get_pending_attested(self, *, limit: int = 50) -> List[VerificationModel]:
        """Pending records already handed to the network, oldest first."""
        return (
            self.db.query(self.model)
            .filter(self.model.status == "pending", self.model.attestation_id.isnot(None))
            .order_by(self.model.created_at)
            .limit(limit)
            .all()
        )

    def get_pending_unsubmitted(self, *, older_than: datetime, limit: int = 50) -> List[VerificationModel]:
        """Pending records whose attestation step never recorded an id."""
        return (
            self.db.query(self.model)
            .filter(
                self.model.status == "pending",
                self.model.attestation_id.is_(None),
                self.model.created_at < older_than,
            )
            .order_by(self.model.created_at)
            .limit(limit)
            .all()
        )

    def _submitter_query(self, submitter_identity: str, status: Optional[str]):
        # Ethereum addresses compare case-insensitively
        query = self.db.query(self.model).filter(
            func.lower(self.model.submitter_identity) == submitter_identity.lower()
        )
        if status:
            query = query.filter(self.model.status == status)
        return query
