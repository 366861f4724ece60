"""Verification Store: the single source of truth for protocol state.

Every method runs in its own short-lived session (one unit of work), so the
store is safe to call from request threads and background workers at the same
time. Status-guarded writes are compare-and-set statements on
``(id, status, version)``; a reader never sees a half-applied transition.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from provenance.errors import NotChallengeable, NotFound, StoreConflict
from provenance.models.challenge import ChallengeModel
from provenance.models.verification import VerificationModel
from provenance.repositories.challenge_repo import ChallengeRepository
from provenance.repositories.verification_repo import VerificationRepository
from provenance.schemas.challenge import Challenge
from provenance.schemas.verification import Verification, VerificationStatus

logger = logging.getLogger(__name__)

# Version conflicts are retried; a status mismatch is never retried
_MAX_CAS_ATTEMPTS = 10


def _value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _plain(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _value(v) for k, v in values.items()}


def to_verification(row: VerificationModel) -> Verification:
    return Verification(
        id=row.id,
        prompt=row.prompt,
        output=row.output,
        model=row.model,
        output_hash=row.output_hash,
        submitter_identity=row.submitter_identity,
        signature=row.signature,
        signed_message=row.signed_message,
        status=VerificationStatus(row.status),
        attestation_id=row.attestation_id,
        proof=row.proof,
        retry_count=row.retry_count or 0,
        created_at=row.created_at,
        resolved_at=row.resolved_at,
        metadata=dict(row.meta or {}),
    )


class VerificationStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ── verifications: reads ─────────────────────────────────────────

    def get(self, verification_id: str) -> Optional[Verification]:
        with self._unit_of_work() as db:
            row = VerificationRepository(db).get(verification_id)
            return to_verification(row) if row else None

    def find_by_attestation_id(self, attestation_id: str) -> Optional[Verification]:
        with self._unit_of_work() as db:
            row = VerificationRepository(db).get_by_attestation_id(attestation_id)
            return to_verification(row) if row else None

    def find_by_previous_attestation_id(self, attestation_id: str) -> Optional[Verification]:
        """Record that used ``attestation_id`` before a retry superseded it."""
        with self._unit_of_work() as db:
            row = VerificationRepository(db).get_by_previous_attestation_id(attestation_id)
            return to_verification(row) if row else None

    def list_for_submitter(
        self,
        submitter_identity: str,
        *,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Verification], int]:
        with self._unit_of_work() as db:
            repo = VerificationRepository(db)
            rows = repo.get_for_submitter(submitter_identity, status=status, skip=skip, limit=limit)
            total = repo.count_for_submitter(submitter_identity, status=status)
            return [to_verification(r) for r in rows], total

    def count_by_status(self) -> Dict[str, int]:
        with self._unit_of_work() as db:
            return VerificationRepository(db).count_by_status()

    def list_pending_attested(self, *, limit: int = 50) -> List[Verification]:
        with self._unit_of_work() as db:
            rows = VerificationRepository(db).get_pending_attested(limit=limit)
            return [to_verification(r) for r in rows]

    def list_pending_unsubmitted(self, *, older_than: datetime, limit: int = 50) -> List[Verification]:
        with self._unit_of_work() as db:
            rows = VerificationRepository(db).get_pending_unsubmitted(older_than=older_than, limit=limit)
            return [to_verification(r) for r in rows]

    # ── verifications: writes ────────────────────────────────────────

    def create(self, record: VerificationModel) -> Verification:
        with self._unit_of_work() as db:
            VerificationRepository(db).create(record)
            return to_verification(record)

    def conditional_update(
        self,
        verification_id: str,
        expected_status: VerificationStatus,
        patch: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
        expected_fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Apply ``patch`` only while the record is still in ``expected_status``.

        ``expected_fields`` adds further column preconditions (e.g. the
        attestation id a callback refers to). ``metadata`` entries are merged
        into the record's metadata bag in the same statement. Returns False
        (and writes nothing) when a precondition no longer holds; raises
        ``NotFound`` for an unknown id.
        """
        expected = VerificationStatus(expected_status).value
        return self._cas(verification_id, expected, _plain(patch), metadata, expected_fields or {})

    def annotate(self, verification_id: str, metadata: Dict[str, Any]) -> bool:
        """Merge diagnostic entries into metadata without touching status."""
        return self._cas(verification_id, None, {}, metadata, {})

    def _cas(
        self,
        verification_id: str,
        expected_status: Optional[str],
        values: Dict[str, Any],
        metadata: Optional[Dict[str, Any]],
        expected_fields: Dict[str, Any],
    ) -> bool:
        for _ in range(_MAX_CAS_ATTEMPTS):
            with self._unit_of_work() as db:
                repo = VerificationRepository(db)
                row = repo.get(verification_id)
                if row is None:
                    raise NotFound(f"Verification {verification_id} not found")
                if expected_status is not None and row.status != expected_status:
                    return False
                if any(getattr(row, k) != v for k, v in expected_fields.items()):
                    return False

                update = dict(values)
                update["version"] = row.version + 1
                if metadata:
                    update["meta"] = {**(row.meta or {}), **metadata}

                if repo.compare_and_set(
                    verification_id,
                    {"status": row.status, "version": row.version},
                    update,
                ):
                    return True
            logger.debug("Version conflict on %s, re-reading", verification_id)
        raise StoreConflict(f"Verification {verification_id} kept changing under update")

    # ── challenges ───────────────────────────────────────────────────

    def create_challenge(self, challenge: ChallengeModel, metadata: Dict[str, Any]) -> Challenge:
        """Insert ``challenge`` and flip its verification ``verified → challenged``.

        Both writes commit in one transaction, or neither does.
        """
        verified = VerificationStatus.VERIFIED.value
        for _ in range(_MAX_CAS_ATTEMPTS):
            with self._unit_of_work() as db:
                verifications = VerificationRepository(db)
                row = verifications.get(challenge.verification_id)
                if row is None:
                    raise NotFound(f"Verification {challenge.verification_id} not found")
                if row.status != verified:
                    raise NotChallengeable(row.status)

                flipped = verifications.compare_and_set(
                    row.id,
                    {"status": verified, "version": row.version},
                    {
                        "status": VerificationStatus.CHALLENGED.value,
                        "version": row.version + 1,
                        "meta": {**(row.meta or {}), **metadata},
                    },
                )
                if flipped:
                    ChallengeRepository(db).create(challenge)
                    return Challenge.model_validate(challenge)
            logger.debug("Version conflict challenging %s, re-reading", challenge.verification_id)
        raise StoreConflict(f"Verification {challenge.verification_id} kept changing under challenge")

    def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        with self._unit_of_work() as db:
            row = ChallengeRepository(db).get(challenge_id)
            return Challenge.model_validate(row) if row else None

    def list_challenges(self, verification_id: str) -> List[Challenge]:
        with self._unit_of_work() as db:
            rows = ChallengeRepository(db).get_for_verification(verification_id)
            return [Challenge.model_validate(r) for r in rows]

    def conditional_update_challenge(
        self, challenge_id: str, expected_status: Any, patch: Dict[str, Any]
    ) -> bool:
        with self._unit_of_work() as db:
            repo = ChallengeRepository(db)
            if repo.get(challenge_id) is None:
                raise NotFound(f"Challenge {challenge_id} not found")
            return repo.compare_and_set(
                challenge_id, {"status": _value(expected_status)}, _plain(patch)
            )
