"""Tests for the verification orchestrator.

The attestation network is a MagicMock; the store is a real SQLite database
and background work runs on a real dispatcher (``dispatcher.join`` waits for it).
"""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from provenance.clients.certification_client import CertificationClient, CertificationReceipt
from provenance.domain.authenticator import build_message
from provenance.errors import (
    AttestationSubmissionFailed,
    AttestationTransient,
    AuthenticationFailed,
    CertificationFailed,
    IntegrityMismatch,
    InvalidStateTransition,
    NotFound,
)
from provenance.models.verification import utcnow
from provenance.schemas.attestation import AttestationRequest, AttestationState, AttestationStatus, MerkleProof
from provenance.schemas.verification import ClaimSubmission, VerificationStatus
from provenance.services.orchestrator import VerificationOrchestrator
from tests.fixtures import HELLO_HASH, MODEL, make_record, sign, sign_hash


def claim(**overrides) -> ClaimSubmission:
    values = dict(
        prompt="Say hello",
        output="hello",
        model=MODEL,
        submitter_identity="0xAbC0000000000000000000000000000000000001",
    )
    values.update(overrides)
    return ClaimSubmission(**values)


def with_settings(orchestrator, settings, **changes) -> VerificationOrchestrator:
    return VerificationOrchestrator(
        store=orchestrator.store,
        attestation_client=orchestrator.attestation,
        dispatcher=orchestrator.dispatcher,
        certification_client=orchestrator.certification,
        settings=settings.model_copy(update=changes),
    )


# ══════════════════════════════════════════════════════════════════════
# SUBMISSION
# ══════════════════════════════════════════════════════════════════════


class TestSubmit:
    def test_valid_submission_creates_one_pending_record(self, orchestrator, store, dispatcher):
        record = orchestrator.submit(claim())

        assert record.status is VerificationStatus.PENDING
        assert record.output_hash == HELLO_HASH
        assert record.retry_count == 0
        assert record.attestation_id is None
        assert record.metadata["submitted_at"]
        assert store.count_by_status() == {"pending": 1}
        assert dispatcher.join(timeout=5)

    def test_attestation_id_recorded_in_background(self, orchestrator, store, dispatcher, attestation_client):
        record = orchestrator.submit(claim())
        assert dispatcher.join(timeout=5)

        after = store.get(record.id)
        assert after.status is VerificationStatus.PENDING
        assert after.attestation_id == "att_1"
        assert "attestation_submitted_at" in after.metadata

        request = attestation_client.submit.call_args.args[0]
        assert isinstance(request, AttestationRequest)
        assert request.verification_id == record.id
        assert request.output_hash == HELLO_HASH

    def test_client_metadata_kept(self, orchestrator, dispatcher):
        record = orchestrator.submit(claim(metadata={"confidence": 0.9}))
        assert record.metadata["client"] == {"confidence": 0.9}
        dispatcher.join(timeout=5)

    def test_signed_submission(self, orchestrator, submitter, dispatcher):
        record = orchestrator.submit(
            claim(submitter_identity=submitter.address, signature=sign_hash(submitter, HELLO_HASH))
        )

        assert record.status is VerificationStatus.PENDING
        assert record.signed_message == build_message(HELLO_HASH)
        dispatcher.join(timeout=5)

    def test_custom_message_embedding_hash(self, orchestrator, submitter, dispatcher):
        message = f"I generated this with Claude: {HELLO_HASH}"
        record = orchestrator.submit(
            claim(
                submitter_identity=submitter.address,
                signature=sign(submitter, message),
                message=message,
            )
        )
        assert record.signed_message == message
        dispatcher.join(timeout=5)

    def test_bad_signature_persists_nothing(self, orchestrator, store, submitter, other_account, attestation_client):
        with pytest.raises(AuthenticationFailed):
            orchestrator.submit(
                claim(submitter_identity=submitter.address, signature=sign_hash(other_account, HELLO_HASH))
            )

        assert store.count_by_status() == {}
        attestation_client.submit.assert_not_called()

    def test_message_without_hash_is_rejected(self, orchestrator, store, submitter):
        message = "I promise this is mine"
        with pytest.raises(AuthenticationFailed):
            orchestrator.submit(
                claim(
                    submitter_identity=submitter.address,
                    signature=sign(submitter, message),
                    message=message,
                )
            )
        assert store.count_by_status() == {}

    def test_signature_required(self, orchestrator, settings, store):
        strict = with_settings(orchestrator, settings, require_signature=True)
        with pytest.raises(AuthenticationFailed):
            strict.submit(claim())
        assert store.count_by_status() == {}

    def test_hash_mismatch_persists_nothing(self, orchestrator, store, attestation_client):
        with pytest.raises(IntegrityMismatch) as exc_info:
            orchestrator.submit(claim(output_hash="0" * 64))

        assert exc_info.value.computed == HELLO_HASH
        assert store.count_by_status() == {}
        attestation_client.submit.assert_not_called()

    def test_matching_hash_any_case(self, orchestrator, dispatcher):
        record = orchestrator.submit(claim(output_hash="0x" + HELLO_HASH.upper()))
        assert record.output_hash == HELLO_HASH
        dispatcher.join(timeout=5)

    def test_signature_over_wrong_hash_fails_authentication(self, orchestrator, store, submitter):
        wrong = "1" * 64
        with pytest.raises(AuthenticationFailed):
            orchestrator.submit(
                claim(
                    submitter_identity=submitter.address,
                    output_hash=wrong,
                    signature=sign_hash(submitter, HELLO_HASH),
                )
            )
        assert store.count_by_status() == {}


class TestAttestationFailures:
    def test_transient_failure_resubmits_then_rejects(self, orchestrator, store, dispatcher, attestation_client):
        attestation_client.submit.side_effect = AttestationTransient("timeout")

        record = orchestrator.submit(claim())
        assert dispatcher.join(timeout=5)

        after = store.get(record.id)
        assert after.status is VerificationStatus.REJECTED
        assert after.resolved_at is not None
        assert after.metadata["attestation_error_kind"] == "transient"
        assert "timeout" in after.metadata["attestation_error"]
        assert attestation_client.submit.call_count == 2  # 1 + attestation_transient_resubmits

    def test_transient_then_success(self, orchestrator, store, dispatcher, attestation_client):
        attestation_client.submit.side_effect = [AttestationTransient("blip"), "att_2"]

        record = orchestrator.submit(claim())
        assert dispatcher.join(timeout=5)

        after = store.get(record.id)
        assert after.status is VerificationStatus.PENDING
        assert after.attestation_id == "att_2"

    def test_permanent_failure_rejects_immediately(self, orchestrator, store, dispatcher, attestation_client):
        attestation_client.submit.side_effect = AttestationSubmissionFailed("400 bad claim")

        record = orchestrator.submit(claim())
        assert dispatcher.join(timeout=5)

        after = store.get(record.id)
        assert after.status is VerificationStatus.REJECTED
        assert after.metadata["attestation_error_kind"] == "permanent"
        assert attestation_client.submit.call_count == 1

    def test_attest_skips_already_submitted(self, orchestrator, store, attestation_client):
        rec = store.create(make_record(attestation_id="att_0"))

        orchestrator._attest(rec.id)

        attestation_client.submit.assert_not_called()
        assert store.get(rec.id).attestation_id == "att_0"

    def test_subscribes_when_callback_configured(self, orchestrator, settings, store, dispatcher, attestation_client):
        subscribing = with_settings(orchestrator, settings, attestation_callback_url="https://me.test/cb")

        record = subscribing.submit(claim())
        assert dispatcher.join(timeout=5)

        attestation_client.subscribe.assert_called_once_with("att_1", "https://me.test/cb")
        assert store.get(record.id).metadata["attestation_subscription_id"] == "sub_1"

    def test_subscription_failure_is_annotated(self, orchestrator, settings, store, dispatcher, attestation_client):
        attestation_client.subscribe.side_effect = AttestationSubmissionFailed("no webhooks")
        subscribing = with_settings(orchestrator, settings, attestation_callback_url="https://me.test/cb")

        record = subscribing.submit(claim())
        assert dispatcher.join(timeout=5)

        after = store.get(record.id)
        assert after.status is VerificationStatus.PENDING
        assert after.attestation_id == "att_1"
        assert "no webhooks" in after.metadata["attestation_subscription_error"]


# ══════════════════════════════════════════════════════════════════════
# RESOLUTION
# ══════════════════════════════════════════════════════════════════════


class TestResolve:
    def test_confirmed_outcome_verifies(self, orchestrator, store, dispatcher):
        rec = store.create(make_record(attestation_id="att_1"))

        resolved = orchestrator.resolve("att_1", "confirmed", ["0xp1", "0xp2"])

        assert resolved.status is VerificationStatus.VERIFIED
        assert resolved.proof == ["0xp1", "0xp2"]
        assert resolved.resolved_at is not None
        assert resolved.metadata["attestation_status"] == "confirmed"
        assert store.get(rec.id).status is VerificationStatus.VERIFIED
        dispatcher.join(timeout=5)

    def test_rejected_outcome(self, orchestrator, store):
        rec = store.create(make_record(attestation_id="att_1"))

        resolved = orchestrator.resolve("att_1", "rejected")

        assert resolved.status is VerificationStatus.REJECTED
        assert resolved.resolved_at is not None
        assert resolved.proof is None
        assert store.get(rec.id).status is VerificationStatus.REJECTED

    def test_duplicate_outcome_is_noop(self, orchestrator, store, dispatcher):
        rec = store.create(make_record(attestation_id="att_1"))

        first = orchestrator.resolve("att_1", "confirmed", ["0xp"])
        second = orchestrator.resolve("att_1", "confirmed", ["0xother"])
        third = orchestrator.resolve("att_1", "rejected")

        assert first.status is VerificationStatus.VERIFIED
        assert second.status is VerificationStatus.VERIFIED
        assert third.status is VerificationStatus.VERIFIED
        assert store.get(rec.id).proof == ["0xp"]
        dispatcher.join(timeout=5)

    def test_resolve_by_verification_id(self, orchestrator, store, dispatcher):
        rec = store.create(make_record(attestation_id="att_1"))

        resolved = orchestrator.resolve("att_1", "confirmed", None, verification_id=rec.id)

        assert resolved.status is VerificationStatus.VERIFIED
        dispatcher.join(timeout=5)

    def test_stale_attestation_id_is_discarded(self, orchestrator, store):
        rec = store.create(make_record(attestation_id="att_current"))

        resolved = orchestrator.resolve("att_old", "rejected", verification_id=rec.id)

        assert resolved.status is VerificationStatus.PENDING
        assert store.get(rec.id).status is VerificationStatus.PENDING

    def test_unknown_attestation(self, orchestrator):
        with pytest.raises(NotFound):
            orchestrator.resolve("att_nobody", "confirmed")

    def test_unknown_verification_id(self, orchestrator):
        with pytest.raises(NotFound):
            orchestrator.resolve("att_1", "confirmed", verification_id="ver_missing")

    def test_invalid_outcome_value(self, orchestrator, store):
        store.create(make_record(attestation_id="att_1"))
        with pytest.raises(ValueError):
            orchestrator.resolve("att_1", "maybe")

    def test_failed_proof_check_rejects(self, orchestrator, settings, store, attestation_client):
        attestation_client.verify_proof.return_value = False
        checking = with_settings(orchestrator, settings, verify_proofs_on_resolve=True)
        rec = store.create(make_record(attestation_id="att_1"))

        resolved = checking.resolve("att_1", "confirmed", ["0xforged"])

        assert resolved.status is VerificationStatus.REJECTED
        assert resolved.metadata["proof_verification"] == "failed"
        assert store.get(rec.id).proof is None

    def test_passing_proof_check_verifies(self, orchestrator, settings, store, dispatcher, attestation_client):
        checking = with_settings(orchestrator, settings, verify_proofs_on_resolve=True)
        store.create(make_record(attestation_id="att_1"))

        resolved = checking.resolve("att_1", "confirmed", ["0xp"])

        assert resolved.status is VerificationStatus.VERIFIED
        assert resolved.metadata["proof_verification"] == "passed"
        attestation_client.verify_proof.assert_called_once()
        dispatcher.join(timeout=5)


class TestCertification:
    @pytest.fixture
    def certification(self):
        client = MagicMock(spec=CertificationClient)
        client.configured = True
        client.certify.return_value = CertificationReceipt(token_id="7", transaction_hash="0xtx", block_number=1)
        return client

    @pytest.fixture
    def certifying(self, orchestrator, settings, certification):
        return VerificationOrchestrator(
            store=orchestrator.store,
            attestation_client=orchestrator.attestation,
            dispatcher=orchestrator.dispatcher,
            certification_client=certification,
            settings=settings,
        )

    def test_verified_record_is_certified(self, certifying, certification, store, dispatcher):
        rec = store.create(make_record(attestation_id="att_1"))

        certifying.resolve("att_1", "confirmed", ["0xp"])
        assert dispatcher.join(timeout=5)

        certification.certify.assert_called_once()
        after = store.get(rec.id)
        assert after.metadata["certification"]["token_id"] == "7"
        assert after.status is VerificationStatus.VERIFIED

    def test_certification_failure_never_reverts(self, certifying, certification, store, dispatcher):
        certification.certify.side_effect = CertificationFailed("ledger down")
        rec = store.create(make_record(attestation_id="att_1"))

        certifying.resolve("att_1", "confirmed", ["0xp"])
        assert dispatcher.join(timeout=5)

        after = store.get(rec.id)
        assert after.status is VerificationStatus.VERIFIED
        assert "ledger down" in after.metadata["certification_error"]

    def test_rejected_outcome_is_not_certified(self, certifying, certification, store, dispatcher):
        store.create(make_record(attestation_id="att_1"))

        certifying.resolve("att_1", "rejected")
        assert dispatcher.join(timeout=5)

        certification.certify.assert_not_called()


# ══════════════════════════════════════════════════════════════════════
# RETRY
# ══════════════════════════════════════════════════════════════════════


class TestRetry:
    def test_retry_from_rejected(self, orchestrator, store, dispatcher, attestation_client):
        attestation_client.submit.return_value = "att_new"
        rec = store.create(make_record(status="rejected", attestation_id="att_old", resolved_at=utcnow()))

        retried = orchestrator.retry(rec.id)

        assert retried.status is VerificationStatus.PENDING
        assert retried.retry_count == 1
        assert retried.resolved_at is None
        assert retried.metadata["previous_attestation_ids"] == ["att_old"]

        assert dispatcher.join(timeout=5)
        after = store.get(rec.id)
        assert after.status is VerificationStatus.PENDING
        assert after.attestation_id == "att_new"

    def test_old_attestation_callback_after_retry_is_stale(self, orchestrator, store, dispatcher, attestation_client):
        attestation_client.submit.return_value = "att_new"
        rec = store.create(make_record(status="rejected", attestation_id="att_old"))
        orchestrator.retry(rec.id)
        assert dispatcher.join(timeout=5)

        resolved = orchestrator.resolve("att_old", "confirmed", verification_id=rec.id)

        assert resolved.status is VerificationStatus.PENDING

    def test_superseded_attestation_callback_without_verification_id(
        self, orchestrator, store, dispatcher, attestation_client
    ):
        attestation_client.submit.return_value = "att_new"
        rec = store.create(make_record(status="rejected", attestation_id="att_old"))
        orchestrator.retry(rec.id)
        assert dispatcher.join(timeout=5)

        resolved = orchestrator.resolve("att_old", "confirmed", proof=["0xp"])

        assert resolved.id == rec.id
        assert resolved.status is VerificationStatus.PENDING
        after = store.get(rec.id)
        assert after.status is VerificationStatus.PENDING
        assert after.attestation_id == "att_new"
        assert after.proof is None

    @pytest.mark.parametrize("status", ["pending", "verified", "challenged"])
    def test_retry_from_other_status_fails(self, orchestrator, store, attestation_client, status):
        rec = store.create(make_record(status=status, attestation_id="att_1"))

        with pytest.raises(InvalidStateTransition):
            orchestrator.retry(rec.id)

        after = store.get(rec.id)
        assert after.status.value == status
        assert after.retry_count == 0
        attestation_client.submit.assert_not_called()

    def test_retry_unknown(self, orchestrator):
        with pytest.raises(NotFound):
            orchestrator.retry("ver_missing")

    def test_retry_count_accumulates(self, orchestrator, store, dispatcher, attestation_client):
        attestation_client.submit.side_effect = AttestationSubmissionFailed("nope")
        rec = store.create(make_record(status="rejected"))

        orchestrator.retry(rec.id)
        assert dispatcher.join(timeout=5)
        assert store.get(rec.id).status is VerificationStatus.REJECTED

        orchestrator.retry(rec.id)
        assert dispatcher.join(timeout=5)
        assert store.get(rec.id).retry_count == 2


# ══════════════════════════════════════════════════════════════════════
# POLLING & QUERIES
# ══════════════════════════════════════════════════════════════════════


class TestPollPending:
    def test_sweep_resolves_final_outcomes(self, orchestrator, store, dispatcher, attestation_client):
        confirmed = store.create(make_record(attestation_id="att_c"))
        rejected = store.create(make_record(attestation_id="att_r"))
        waiting = store.create(make_record(attestation_id="att_w"))
        flaky = store.create(make_record(attestation_id="att_f"))

        def poll(attestation_id):
            if attestation_id == "att_f":
                raise AttestationTransient("timeout")
            state = {"att_c": "confirmed", "att_r": "rejected", "att_w": "submitted"}[attestation_id]
            return AttestationStatus(
                attestation_id=attestation_id,
                status=AttestationState(state),
                proof=["0xp"] if state == "confirmed" else None,
            )

        attestation_client.poll_status.side_effect = poll

        summary = orchestrator.poll_pending()

        assert summary.checked == 4
        assert summary.verified == 1
        assert summary.rejected == 1
        assert summary.still_pending == 2
        assert summary.errors == 0
        assert store.get(confirmed.id).status is VerificationStatus.VERIFIED
        assert store.get(rejected.id).status is VerificationStatus.REJECTED
        assert store.get(waiting.id).status is VerificationStatus.PENDING
        assert store.get(flaky.id).status is VerificationStatus.PENDING
        dispatcher.join(timeout=5)

    def test_permanent_poll_error_counted(self, orchestrator, store, attestation_client):
        store.create(make_record(attestation_id="att_x"))
        attestation_client.poll_status.side_effect = AttestationSubmissionFailed("404")

        summary = orchestrator.poll_pending()

        assert summary.errors == 1

    def test_stale_unsubmitted_records_are_redispatched(self, orchestrator, store, dispatcher, attestation_client):
        stale = store.create(make_record(created_at=utcnow() - timedelta(hours=1)))
        fresh = store.create(make_record())

        summary = orchestrator.poll_pending()
        assert dispatcher.join(timeout=5)

        assert summary.redispatched == 1
        assert store.get(stale.id).attestation_id == "att_1"
        assert store.get(fresh.id).attestation_id is None

    def test_record_with_submission_in_flight_is_not_redispatched(
        self, orchestrator, store, dispatcher, attestation_client
    ):
        gate = threading.Event()

        def slow_submit(request):
            gate.wait(5)
            return "att_1"

        attestation_client.submit.side_effect = slow_submit
        stale = store.create(make_record(created_at=utcnow() - timedelta(hours=1)))
        orchestrator._dispatch_attestation(stale.id)

        try:
            summary = orchestrator.poll_pending()
        finally:
            gate.set()
        assert dispatcher.join(timeout=5)

        assert summary.redispatched == 0
        assert summary.still_pending == 1
        assert attestation_client.submit.call_count == 1
        assert store.get(stale.id).attestation_id == "att_1"


class TestQueries:
    def test_get_unknown(self, orchestrator):
        with pytest.raises(NotFound):
            orchestrator.get("ver_missing")

    def test_list_for_submitter(self, orchestrator, store):
        for _ in range(5):
            store.create(make_record(submitter_identity="0xAAA"))
        store.create(make_record(submitter_identity="0xAAA", status="verified"))

        page = orchestrator.list_for_submitter("0xaaa", page=2, limit=4)
        assert page.total == 6
        assert page.page == 2
        assert page.total_pages == 2
        assert len(page.verifications) == 2

        verified = orchestrator.list_for_submitter("0xAAA", status=VerificationStatus.VERIFIED)
        assert verified.total == 1

    def test_empty_history(self, orchestrator):
        page = orchestrator.list_for_submitter("0xnobody")
        assert page.total == 0
        assert page.total_pages == 0
        assert page.verifications == []

    def test_stats(self, orchestrator, store):
        store.create(make_record(status="verified"))
        store.create(make_record(status="verified"))
        store.create(make_record(status="rejected"))
        store.create(make_record(status="pending"))

        stats = orchestrator.stats()

        assert stats.total_verifications == 4
        assert stats.verified_count == 2
        assert stats.rejected_count == 1
        assert stats.pending_count == 1
        assert stats.challenged_count == 0
        assert stats.success_rate == 50.0

    def test_stats_empty(self, orchestrator):
        assert orchestrator.stats().success_rate == 0.0

    def test_verify_proof_delegates(self, orchestrator, attestation_client):
        attestation_client.verify_proof.return_value = False
        result = orchestrator.verify_proof("d" * 64, ["0xp"])
        assert result.valid is False
        attestation_client.verify_proof.assert_called_once_with("d" * 64, ["0xp"])

    def test_fetch_proof_for_known_attestation(self, orchestrator, store, attestation_client):
        store.create(make_record(attestation_id="att_1"))
        proof = MerkleProof(merkle_root="0xroot", proof=["0xa"], leaf="0xleaf")
        attestation_client.fetch_proof.return_value = proof

        assert orchestrator.fetch_proof("att_1") == proof
        attestation_client.fetch_proof.assert_called_once_with("att_1")

    def test_fetch_proof_for_unknown_attestation(self, orchestrator, attestation_client):
        with pytest.raises(NotFound):
            orchestrator.fetch_proof("att_nobody")
        attestation_client.fetch_proof.assert_not_called()
