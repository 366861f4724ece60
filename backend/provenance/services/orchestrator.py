"""Verification Orchestrator: owns the verification state machine.

Protocol order for a submission (each step can abort the whole call):

1. authenticate the signature over a message that embeds the output hash
2. check the caller's expected hash against the computed digest
3. persist the record in ``pending``
4. hand the claim to the attestation network in the background

A failure in steps 1-2 leaves no record and makes no external call. After
step 3 every failure leaves an inspectable record with a terminal or
retryable status.

Outcomes arrive out of band (webhook via ``resolve`` or ``poll_pending``).
All status changes go through the store's compare-and-set, so a late or
duplicate callback and a user-initiated ``retry`` can never both apply.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from provenance.clients.attestation_client import AttestationClient
from provenance.clients.certification_client import CertificationClient
from provenance.config import Settings
from provenance.domain.authenticator import ClaimAuthenticator, build_message, message_embeds_hash
from provenance.domain.ids import new_verification_id
from provenance.domain.integrity import IntegrityChecker
from provenance.domain.transitions import RESOLVED_STATUSES, ensure_transition
from provenance.errors import (
    AttestationError,
    AttestationTransient,
    AuthenticationFailed,
    CertificationFailed,
    IntegrityMismatch,
    InvalidStateTransition,
    NotFound,
)
from provenance.logging_config import get_logger
from provenance.models.verification import VerificationModel
from provenance.schemas.attestation import (
    AttestationOutcome,
    AttestationRequest,
    MerkleProof,
    ProofVerificationResult,
)
from provenance.schemas.verification import (
    ClaimSubmission,
    PollSummary,
    Verification,
    VerificationPage,
    VerificationStats,
    VerificationStatus,
)
from provenance.services.dispatcher import BackgroundDispatcher
from provenance.store import VerificationStore

logger = get_logger(__name__)

PENDING = VerificationStatus.PENDING
VERIFIED = VerificationStatus.VERIFIED
REJECTED = VerificationStatus.REJECTED


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _attestation_task_key(verification_id: str) -> tuple:
    return ("attestation_submit", verification_id)


class VerificationOrchestrator:
    def __init__(
        self,
        store: VerificationStore,
        attestation_client: AttestationClient,
        dispatcher: BackgroundDispatcher,
        integrity: Optional[IntegrityChecker] = None,
        authenticator: Optional[ClaimAuthenticator] = None,
        certification_client: Optional[CertificationClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.attestation = attestation_client
        self.dispatcher = dispatcher
        self.integrity = integrity or IntegrityChecker()
        self.authenticator = authenticator or ClaimAuthenticator()
        self.certification = certification_client
        self._settings = settings or Settings()

    # ══════════════════════════════════════════════════════════════════
    # SUBMISSION
    # ══════════════════════════════════════════════════════════════════

    def submit(self, claim: ClaimSubmission) -> Verification:
        """Authenticate, integrity-check and persist a claim; attest in the background.

        Raises ``AuthenticationFailed`` or ``IntegrityMismatch`` without
        persisting anything. Returns the ``pending`` record as soon as it is
        stored.
        """
        computed_hash = self.integrity.hash(claim.output)
        claimed_hash = (
            self.integrity.normalise(claim.output_hash) if claim.output_hash else computed_hash
        )

        # 1. authentication
        signed_message = None
        if claim.signature:
            signed_message = claim.message or build_message(claimed_hash)
            if not message_embeds_hash(signed_message, claimed_hash):
                logger.warning(
                    "submission_rejected",
                    reason="signed_message_missing_hash",
                    submitter=claim.submitter_identity,
                )
                raise AuthenticationFailed("Signed message does not embed the output hash")
            if not self.authenticator.authenticate(
                claim.submitter_identity, signed_message, claim.signature
            ):
                logger.warning(
                    "submission_rejected",
                    reason="invalid_signature",
                    submitter=claim.submitter_identity,
                )
                raise AuthenticationFailed("Signature does not match the submitter identity")
        elif self._settings.require_signature:
            logger.warning(
                "submission_rejected", reason="signature_required", submitter=claim.submitter_identity
            )
            raise AuthenticationFailed("A signature is required for submission")

        # 2. integrity
        if claim.output_hash and not self.integrity.verify(claim.output, claim.output_hash):
            logger.warning(
                "submission_rejected",
                reason="output_hash_mismatch",
                submitter=claim.submitter_identity,
                expected=claim.output_hash,
                computed=computed_hash,
            )
            raise IntegrityMismatch(claim.output_hash, computed_hash)

        # 3. persist
        now = _now()
        metadata: dict[str, Any] = {"submitted_at": now.isoformat()}
        if claim.metadata:
            metadata["client"] = claim.metadata
        verification = self.store.create(
            VerificationModel(
                id=new_verification_id(),
                prompt=claim.prompt,
                output=claim.output,
                model=claim.model,
                output_hash=computed_hash,
                submitter_identity=claim.submitter_identity,
                signature=claim.signature,
                signed_message=signed_message,
                status=PENDING.value,
                retry_count=0,
                version=0,
                created_at=now,
                meta=metadata,
            )
        )
        logger.info(
            "verification_submitted",
            verification_id=verification.id,
            submitter=verification.submitter_identity,
            model=verification.model,
            signed=signed_message is not None,
        )

        # 4. attest (fire-and-forget)
        self._dispatch_attestation(verification.id)
        return verification

    def _dispatch_attestation(self, verification_id: str) -> None:
        self.dispatcher.dispatch(
            "attestation_submit",
            self._attest,
            verification_id,
            context={"verification_id": verification_id},
            key=_attestation_task_key(verification_id),
        )

    def _attest(self, verification_id: str) -> None:
        """Background leg: submit the claim and record the attestation id."""
        record = self.store.get(verification_id)
        if record is None or record.status != PENDING or record.attestation_id:
            logger.info(
                "attestation_submit_skipped",
                status=record.status.value if record else None,
                attestation_id=record.attestation_id if record else None,
            )
            return

        request = AttestationRequest(
            verification_id=record.id,
            prompt_hash=self.integrity.hash(record.prompt),
            output_hash=record.output_hash,
            claim_digest=self._claim_digest(record),
            model=record.model,
            submitter_identity=record.submitter_identity,
            timestamp=record.created_at,
        )

        attempts = 1 + max(0, self._settings.attestation_transient_resubmits)
        attestation_id = None
        for attempt in range(1, attempts + 1):
            try:
                attestation_id = self.attestation.submit(request)
                break
            except AttestationTransient as exc:
                if attempt < attempts:
                    logger.warning(
                        "attestation_submit_transient", attempt=attempt, attempts=attempts, error=str(exc)
                    )
                    continue
                self._reject_submission(verification_id, exc, kind="transient")
                return
            except AttestationError as exc:
                self._reject_submission(verification_id, exc, kind="permanent")
                return

        recorded = self.store.conditional_update(
            verification_id,
            PENDING,
            {"attestation_id": attestation_id},
            metadata={"attestation_submitted_at": _now().isoformat()},
            expected_fields={"attestation_id": None},
        )
        if not recorded:
            logger.warning("attestation_id_not_recorded", attestation_id=attestation_id)
            return
        logger.info("attestation_submitted", attestation_id=attestation_id)

        callback_url = self._settings.attestation_callback_url
        if callback_url:
            try:
                subscription_id = self.attestation.subscribe(attestation_id, callback_url)
                self.store.annotate(verification_id, {"attestation_subscription_id": subscription_id})
            except AttestationError as exc:
                # polling still picks the outcome up
                logger.warning("attestation_subscribe_failed", error=str(exc))
                self.store.annotate(verification_id, {"attestation_subscription_error": str(exc)})

    def _reject_submission(self, verification_id: str, exc: Exception, kind: str) -> None:
        now = _now()
        rejected = self.store.conditional_update(
            verification_id,
            PENDING,
            {"status": REJECTED, "resolved_at": now},
            metadata={
                "attestation_error": str(exc),
                "attestation_error_kind": kind,
                "attestation_failed_at": now.isoformat(),
            },
            expected_fields={"attestation_id": None},
        )
        logger.error(
            "attestation_submit_failed", error=str(exc), kind=kind, status_changed=rejected
        )

    # ══════════════════════════════════════════════════════════════════
    # RESOLUTION
    # ══════════════════════════════════════════════════════════════════

    def resolve(
        self,
        attestation_id: str,
        outcome: Union[AttestationOutcome, str],
        proof: Any = None,
        verification_id: Optional[str] = None,
    ) -> Verification:
        """Apply a final attestation outcome to the record it belongs to.

        Stale callbacks (attestation id no longer current, including ids a
        retry superseded) and duplicates (record already resolved) are
        logged and return the record unchanged. Raises ``NotFound`` when the
        attestation id was never issued for any record.
        """
        outcome = AttestationOutcome(outcome)
        if verification_id:
            record = self.store.get(verification_id)
        else:
            record = self.store.find_by_attestation_id(attestation_id)
            if record is None:
                record = self.store.find_by_previous_attestation_id(attestation_id)
        if record is None:
            raise NotFound(
                f"No verification for attestation {attestation_id}"
                + (f" / {verification_id}" if verification_id else "")
            )

        log = logger.bind(verification_id=record.id, attestation_id=attestation_id, outcome=outcome.value)

        if record.attestation_id != attestation_id:
            log.warning("attestation_callback_stale", current_attestation_id=record.attestation_id)
            return record
        if record.status in RESOLVED_STATUSES:
            log.info("attestation_outcome_ignored", status=record.status.value, reason="already_resolved")
            return record

        now = _now()
        metadata: dict[str, Any] = {
            "attestation_status": outcome.value,
            "attestation_resolved_at": now.isoformat(),
        }
        if outcome is AttestationOutcome.CONFIRMED:
            target = VERIFIED
            patch: dict[str, Any] = {"status": VERIFIED, "proof": proof, "resolved_at": now}
            if self._settings.verify_proofs_on_resolve:
                if self.attestation.verify_proof(self._claim_digest(record), proof):
                    metadata["proof_verification"] = "passed"
                else:
                    target = REJECTED
                    patch = {"status": REJECTED, "resolved_at": now}
                    metadata["proof_verification"] = "failed"
        else:
            target = REJECTED
            patch = {"status": REJECTED, "resolved_at": now}

        ensure_transition(record.status, target)
        applied = self.store.conditional_update(
            record.id,
            PENDING,
            patch,
            metadata=metadata,
            expected_fields={"attestation_id": attestation_id},
        )
        current = self.store.get(record.id)
        if not applied:
            log.info("attestation_outcome_ignored", status=current.status.value, reason="lost_race")
            return current

        log.info("verification_resolved", status=target.value)
        if target is VERIFIED:
            self._dispatch_certification(record.id)
        return current

    def _dispatch_certification(self, verification_id: str) -> None:
        self.dispatcher.dispatch(
            "certification",
            self._certify,
            verification_id,
            context={"verification_id": verification_id},
        )

    def _certify(self, verification_id: str) -> None:
        """Background leg: mint the certificate. Never changes status."""
        if self.certification is None or not self.certification.configured:
            logger.info("certification_skipped", reason="not_configured")
            return
        record = self.store.get(verification_id)
        if record is None or record.status not in (VERIFIED, VerificationStatus.CHALLENGED):
            return
        try:
            receipt = self.certification.certify(record)
        except CertificationFailed as exc:
            logger.error("certification_failed", error=str(exc))
            self.store.annotate(
                verification_id,
                {"certification_error": str(exc), "certification_failed_at": _now().isoformat()},
            )
            return
        self.store.annotate(
            verification_id,
            {"certification": receipt.as_metadata(), "certified_at": _now().isoformat()},
        )
        logger.info("verification_certified", token_id=receipt.token_id)

    # ══════════════════════════════════════════════════════════════════
    # RETRY
    # ══════════════════════════════════════════════════════════════════

    def retry(self, verification_id: str) -> Verification:
        """Resubmit a ``rejected`` record for attestation.

        Raises ``InvalidStateTransition`` from any other status, leaving the
        record untouched.
        """
        record = self.get(verification_id)
        ensure_transition(record.status, PENDING)

        previous = list(record.metadata.get("previous_attestation_ids", []))
        if record.attestation_id:
            previous.append(record.attestation_id)

        applied = self.store.conditional_update(
            verification_id,
            REJECTED,
            {
                "status": PENDING,
                "retry_count": record.retry_count + 1,
                "attestation_id": None,
                "proof": None,
                "resolved_at": None,
            },
            metadata={"previous_attestation_ids": previous, "retried_at": _now().isoformat()},
            expected_fields={"retry_count": record.retry_count},
        )
        if not applied:
            current = self.get(verification_id)
            logger.warning(
                "verification_retry_lost_race", verification_id=verification_id, status=current.status.value
            )
            raise InvalidStateTransition(current.status.value, PENDING.value)

        logger.info(
            "verification_retried", verification_id=verification_id, retry_count=record.retry_count + 1
        )
        self._dispatch_attestation(verification_id)
        return self.get(verification_id)

    # ══════════════════════════════════════════════════════════════════
    # POLLING
    # ══════════════════════════════════════════════════════════════════

    def poll_pending(self, limit: Optional[int] = None) -> PollSummary:
        """One sweep of the background poller.

        Resolves pending records whose attestation reached a final state, and
        re-dispatches attestation for records that have sat in ``pending``
        without an attestation id for longer than ``stale_submission_seconds``.
        """
        limit = limit or self._settings.poll_batch_size
        summary = PollSummary()

        for record in self.store.list_pending_attested(limit=limit):
            summary.checked += 1
            try:
                status = self.attestation.poll_status(record.attestation_id)
            except AttestationTransient as exc:
                logger.warning("attestation_poll_transient", verification_id=record.id, error=str(exc))
                summary.still_pending += 1
                continue
            except AttestationError as exc:
                logger.error("attestation_poll_failed", verification_id=record.id, error=str(exc))
                summary.errors += 1
                continue

            if not status.status.is_final:
                summary.still_pending += 1
                continue

            resolved = self.resolve(
                record.attestation_id,
                AttestationOutcome(status.status.value),
                status.proof,
                verification_id=record.id,
            )
            if resolved.status == VERIFIED:
                summary.verified += 1
            elif resolved.status == REJECTED:
                summary.rejected += 1
            else:
                summary.still_pending += 1

        cutoff = _now() - timedelta(seconds=self._settings.stale_submission_seconds)
        for record in self.store.list_pending_unsubmitted(older_than=cutoff, limit=limit):
            if self.dispatcher.is_pending(_attestation_task_key(record.id)):
                # at most one attestation submit per record in flight
                summary.still_pending += 1
                continue
            logger.warning("attestation_redispatched", verification_id=record.id)
            self._dispatch_attestation(record.id)
            summary.redispatched += 1

        logger.info("attestation_poll_completed", **summary.model_dump())
        return summary

    # ══════════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════════

    def get(self, verification_id: str) -> Verification:
        record = self.store.get(verification_id)
        if record is None:
            raise NotFound(f"Verification {verification_id} not found")
        return record

    def list_for_submitter(
        self,
        submitter_identity: str,
        status: Optional[VerificationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> VerificationPage:
        page = max(1, page)
        limit = max(1, limit)
        records, total = self.store.list_for_submitter(
            submitter_identity,
            status=status.value if status else None,
            skip=(page - 1) * limit,
            limit=limit,
        )
        return VerificationPage(
            verifications=records,
            total=total,
            page=page,
            total_pages=math.ceil(total / limit) if total else 0,
        )

    def stats(self) -> VerificationStats:
        counts = self.store.count_by_status()
        total = sum(counts.values())
        verified = counts.get(VERIFIED.value, 0)
        return VerificationStats(
            total_verifications=total,
            pending_count=counts.get(PENDING.value, 0),
            verified_count=verified,
            challenged_count=counts.get(VerificationStatus.CHALLENGED.value, 0),
            rejected_count=counts.get(REJECTED.value, 0),
            success_rate=round(verified / total * 100, 2) if total else 0.0,
        )

    def fetch_proof(self, attestation_id: str) -> MerkleProof:
        """Merkle inclusion proof for an attestation the service issued."""
        if (
            self.store.find_by_attestation_id(attestation_id) is None
            and self.store.find_by_previous_attestation_id(attestation_id) is None
        ):
            raise NotFound(f"No verification for attestation {attestation_id}")
        return self.attestation.fetch_proof(attestation_id)

    def verify_proof(self, claim_digest: str, proof: Any) -> ProofVerificationResult:
        return ProofVerificationResult(
            valid=self.attestation.verify_proof(claim_digest, proof),
            timestamp=_now(),
        )

    def _claim_digest(self, record: Verification) -> str:
        return self.integrity.claim_digest(
            record.prompt, record.output, record.model, record.submitter_identity
        )
