"""Helpers shared by offline tests: signing keys, digests and record factories."""

from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from provenance.domain.authenticator import build_message
from provenance.domain.ids import new_verification_id
from provenance.models.verification import VerificationModel, utcnow

# Well-known test keys; never hold funds
SUBMITTER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OTHER_KEY = "0x8da4ef21b864d2cc526dbdb2a120bd2874c36c9d0a1fb7f8c63d7f7a8b41de8f"

# sha256("hello")
HELLO_HASH = "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"

MODEL = "claude-sonnet-4-20250514"


def sign(account, message: str) -> str:
    """EIP-191 personal_sign signature as 0x-prefixed hex."""
    signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
    return "0x" + bytes(signed.signature).hex()


def sign_hash(account, output_hash: str) -> str:
    return sign(account, build_message(output_hash))


def make_record(
    status: str = "pending",
    attestation_id: Optional[str] = None,
    output: str = "hello",
    submitter_identity: str = "0xAbC0000000000000000000000000000000000001",
    **overrides,
) -> VerificationModel:
    """An unsaved verification row with sensible defaults."""
    values = dict(
        id=new_verification_id(),
        prompt="Say hello",
        output=output,
        model=MODEL,
        output_hash=HELLO_HASH,
        submitter_identity=submitter_identity,
        status=status,
        attestation_id=attestation_id,
        retry_count=0,
        version=0,
        created_at=utcnow(),
        meta={},
    )
    values.update(overrides)
    return VerificationModel(**values)
