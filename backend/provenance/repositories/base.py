"""Generic base repository with reusable CRUD and compare-and-set operations."""

from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.orm import Session

from provenance.database import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Thin data-access layer over SQLAlchemy.

    Subclasses add domain-specific queries.
    Repositories only modify the session (add/flush/execute) - the caller
    controls when to commit or rollback, enabling multi-step transactions.
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    # ── reads ────────────────────────────────────────────────────────

    def get(self, id: str) -> Optional[T]:
        return self.db.query(self.model).filter(self.model.id == id).first()

    # ── writes ───────────────────────────────────────────────────────

    def create(self, obj: T) -> T:
        """Add object to session (caller must commit)."""
        self.db.add(obj)
        self.db.flush()
        return obj

    def compare_and_set(self, id: str, expected: Dict[str, Any], values: Dict[str, Any]) -> bool:
        """Apply ``values`` only if every column in ``expected`` still matches.

        Issued as a single ``UPDATE ... WHERE`` statement, so the check and the
        write cannot interleave with another writer. Returns True when exactly
        one row changed (caller must commit).
        """
        stmt = update(self.model).where(self.model.id == id)
        for column, value in expected.items():
            stmt = stmt.where(getattr(self.model, column) == value)
        result = self.db.execute(
            stmt.values({getattr(self.model, k): v for k, v in values.items()})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
