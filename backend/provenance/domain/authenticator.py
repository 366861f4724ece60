"""Signature checks proving who submitted a claim.

Submitters are Ethereum accounts. They sign a message with ``personal_sign``
(EIP-191) and we recover the signing address from ``(message, signature)``.
The message must embed the output hash, so a signature can never be replayed
against different content.
"""

import logging

from eth_account import Account
from eth_account.messages import encode_defunct

logger = logging.getLogger(__name__)

MESSAGE_PREFIX = "Provenance attestation request"


def build_message(output_hash: str) -> str:
    """Canonical message a submitter signs for a given output hash."""
    return f"{MESSAGE_PREFIX}\n\nOutput hash: {output_hash.lower()}"


def message_embeds_hash(message: str, output_hash: str) -> bool:
    return bool(output_hash) and output_hash.lower() in (message or "").lower()


class ClaimAuthenticator:
    """Recovers the signer of a message and compares it to the claimed identity."""

    def recover(self, message: str, signature: str) -> str:
        """Return the checksummed address that produced ``signature``.

        Raises whatever eth-account raises for malformed input; use
        ``authenticate`` when a yes/no answer is wanted.
        """
        return Account.recover_message(encode_defunct(text=message), signature=signature)

    def authenticate(self, identity: str, message: str, signature: str) -> bool:
        if not identity or not message or not signature:
            return False
        try:
            recovered = self.recover(message, signature)
        except Exception as exc:  # bad hex, wrong length, invalid curve point, ...
            logger.debug("Signature recovery failed for %s: %s", identity, exc)
            return False
        return recovered.lower() == identity.strip().lower()
