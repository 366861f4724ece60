"""Client for the ledger gateway that mints a certificate for a verified claim.

Contract semantics live on the gateway side; from here certification is a
single request whose receipt is recorded in the verification's metadata.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import httpx

from provenance.clients.base_client import BaseHTTPClient
from provenance.errors import CertificationFailed
from provenance.schemas.verification import Verification

logger = logging.getLogger(__name__)


@dataclass
class CertificationReceipt:
    """What the ledger returned for one mint."""
    token_id: str
    transaction_hash: str
    block_number: Optional[int] = None

    def as_metadata(self) -> Dict[str, Any]:
        return asdict(self)


class CertificationClient(BaseHTTPClient):
    """Ledger gateway client (``POST /certificates``)."""

    transient_error = CertificationFailed
    permanent_error = CertificationFailed

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 60.0,
        retry_max_attempts: int = 2,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            retry_max_attempts=retry_max_attempts,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def certify(self, verification: Verification) -> CertificationReceipt:
        if not self.configured:
            raise CertificationFailed("Certification gateway URL is not configured")

        data = self._post(
            "certificates",
            {
                "verificationId": verification.id,
                "owner": verification.submitter_identity,
                "model": verification.model,
                "outputHash": verification.output_hash,
                "attestationId": verification.attestation_id,
                "proof": verification.proof,
            },
        )
        if not isinstance(data, dict) or not data.get("tokenId"):
            raise CertificationFailed(f"Ledger response for {verification.id} carried no tokenId")

        receipt = CertificationReceipt(
            token_id=str(data["tokenId"]),
            transaction_hash=str(data.get("transactionHash", "")),
            block_number=data.get("blockNumber"),
        )
        logger.info("Certificate minted for %s: token %s", verification.id, receipt.token_id)
        return receipt
