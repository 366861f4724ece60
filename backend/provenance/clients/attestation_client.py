"""Client for the external attestation network.

The client is a relay: it submits claims, reports what the network says and
never decides a verification outcome itself. Only digests of the prompt and
output leave this process.
"""

import logging
from typing import Any, Optional

import httpx

from provenance.clients.base_client import BaseHTTPClient
from provenance.errors import AttestationError, AttestationSubmissionFailed
from provenance.schemas.attestation import (
    AttestationRequest,
    AttestationState,
    AttestationStatus,
    MerkleProof,
    NetworkStats,
)

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = "1.0"
PAYLOAD_SOURCE = "provenance-verifier"


class AttestationClient(BaseHTTPClient):
    """Attestation network API client.

    Endpoints used:
        POST /attestations                 submit a claim
        GET  /attestations/{id}            poll status
        GET  /attestations/{id}/proof      fetch the Merkle proof
        POST /verify                       check a proof
        POST /subscriptions                register a status callback
        GET  /stats                        network statistics
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        retry_max_attempts: int = 3,
        retry_initial_delay: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            retry_max_attempts=retry_max_attempts,
            retry_initial_delay=retry_initial_delay,
            transport=transport,
        )
        if not api_key:
            logger.warning("Attestation API key not provided - the network may refuse requests")

    # ── Claims ───────────────────────────────────────────────────────

    def submit(self, request: AttestationRequest) -> str:
        """Submit a claim and return the network's attestation id.

        Raises ``AttestationTransient`` after the bounded retries, or
        ``AttestationSubmissionFailed`` when the network refuses the claim.
        """
        payload = {
            "type": "ai_verification",
            "data": {
                "verificationId": request.verification_id,
                "promptHash": request.prompt_hash,
                "outputHash": request.output_hash,
                "claimDigest": request.claim_digest,
                "model": request.model,
                "userAddress": request.submitter_identity,
                "timestamp": request.timestamp.isoformat(),
            },
            "metadata": {"version": PAYLOAD_VERSION, "source": PAYLOAD_SOURCE},
        }
        data = self._post("attestations", payload)
        attestation_id = data.get("attestationId") if isinstance(data, dict) else None
        if not attestation_id:
            raise AttestationSubmissionFailed("Attestation network response carried no attestationId")

        logger.info("Attestation submitted for %s: %s", request.verification_id, attestation_id)
        return str(attestation_id)

    def poll_status(self, attestation_id: str) -> AttestationStatus:
        data = self._get(f"attestations/{attestation_id}")
        if not isinstance(data, dict):
            raise AttestationSubmissionFailed(f"Unexpected status payload for {attestation_id}")
        try:
            state = AttestationState(str(data.get("status", "")).lower())
        except ValueError as exc:
            raise AttestationSubmissionFailed(
                f"Unknown attestation status {data.get('status')!r} for {attestation_id}"
            ) from exc

        return AttestationStatus(
            attestation_id=attestation_id,
            status=state,
            merkle_root=data.get("merkleRoot"),
            proof=data.get("proof"),
            timestamp=data.get("timestamp"),
        )

    def fetch_proof(self, attestation_id: str) -> MerkleProof:
        data = self._get(f"attestations/{attestation_id}/proof")
        try:
            return MerkleProof(
                merkle_root=data["merkleRoot"],
                proof=list(data.get("proof") or []),
                leaf=data["leaf"],
            )
        except (KeyError, TypeError) as exc:
            raise AttestationSubmissionFailed(f"Malformed proof payload for {attestation_id}") from exc

    def verify_proof(self, claim_digest: str, proof: Any) -> bool:
        """Ask the network whether ``proof`` attests ``claim_digest``.

        Transport errors, refusals and odd payloads are all reported as False.
        """
        try:
            data = self._post("verify", {"claimDigest": claim_digest, "proof": proof}, timeout=15.0)
        except AttestationError as exc:
            logger.error("Proof verification failed for digest %s: %s", claim_digest, exc)
            return False
        valid = isinstance(data, dict) and data.get("valid") is True
        logger.info("Proof verification for %s: valid=%s", claim_digest, valid)
        return valid

    # ── Callbacks & stats ────────────────────────────────────────────

    def subscribe(self, attestation_id: str, callback_url: str) -> str:
        """Register ``callback_url`` for status changes; returns the subscription id."""
        data = self._post(
            "subscriptions",
            {
                "attestationId": attestation_id,
                "callbackUrl": callback_url,
                "events": ["status_change", "confirmation", "rejection"],
            },
            timeout=10.0,
        )
        subscription_id = data.get("subscriptionId") if isinstance(data, dict) else None
        if not subscription_id:
            raise AttestationSubmissionFailed("Subscription response carried no subscriptionId")
        return str(subscription_id)

    def network_stats(self) -> NetworkStats:
        try:
            data = self._get("stats", timeout=10.0)
        except AttestationError as exc:
            logger.error("Failed to get attestation network stats: %s", exc)
            return NetworkStats()
        if not isinstance(data, dict):
            return NetworkStats()
        return NetworkStats(
            total_attestations=data.get("totalAttestations") or 0,
            confirmed_attestations=data.get("confirmedAttestations") or 0,
            average_confirmation_time=data.get("averageConfirmationTime") or 0.0,
            network_health=data.get("networkHealth") or "unknown",
        )
