"""Typed errors raised by the verification core.

The HTTP layer maps each of these to a status code (see ``provenance.main``);
nothing in the core raises a bare ``Exception`` for a protocol failure.
"""

from typing import Optional


class ProvenanceError(Exception):
    """Base error for all verification-core failures."""


class AuthenticationFailed(ProvenanceError):
    """Signature does not recover to the claimed identity (nothing persisted)."""


class IntegrityMismatch(ProvenanceError):
    """Supplied output hash differs from the computed digest (nothing persisted)."""

    def __init__(self, expected: str, computed: str):
        super().__init__(f"Output hash mismatch: expected {expected}, computed {computed}")
        self.expected = expected
        self.computed = computed


class AttestationError(ProvenanceError):
    """Base for failures talking to the attestation network."""


class AttestationSubmissionFailed(AttestationError):
    """The network refused the request or answered with something unusable."""


class AttestationTransient(AttestationError):
    """Timeout, connection failure, 429 or 5xx after the client's bounded retries."""


class InvalidStateTransition(ProvenanceError):
    """Requested transition is illegal from the record's current status."""

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        super().__init__(message or f"Cannot move from '{current}' to '{target}'")
        self.current = current
        self.target = target


class NotChallengeable(InvalidStateTransition):
    """Challenge target is not in the ``verified`` status."""

    def __init__(self, current: str):
        super().__init__(
            current,
            "challenged",
            f"Verification cannot be challenged in status '{current}'",
        )


class NotFound(ProvenanceError):
    """Unknown verification, challenge or attestation id."""


class StoreConflict(ProvenanceError):
    """A record kept changing under a compare-and-set beyond the retry bound."""


class CertificationFailed(ProvenanceError):
    """The ledger gateway could not certify a verified record."""
