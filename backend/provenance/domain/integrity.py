"""Content digests and integrity checks.

Usage:
    from provenance.domain.integrity import IntegrityChecker

    checker = IntegrityChecker()
    digest = checker.hash("hello")
    checker.verify("hello", digest)  # True
"""

import hashlib
import json
import re

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


class IntegrityChecker:
    """Deterministic SHA-256 digests over UTF-8 text."""

    def hash(self, content: str) -> str:
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    def verify(self, content: str, expected_digest: str) -> bool:
        """Recompute the digest of ``content`` and compare it to ``expected_digest``.

        The expected digest is normalised (trimmed, lowercased, optional
        ``0x`` prefix dropped) before comparison. Anything that is not a
        64-char hex string simply fails.
        """
        normalised = self.normalise(expected_digest)
        if not _HEX_DIGEST.match(normalised):
            return False
        return self.hash(content) == normalised

    def claim_digest(self, prompt: str, output: str, model: str, submitter_identity: str) -> str:
        """Digest of the whole claim tuple, stable across key order and whitespace."""
        canonical = json.dumps(
            {
                "model": model,
                "output_hash": self.hash(output),
                "prompt_hash": self.hash(prompt),
                "submitter": submitter_identity.lower(),
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return self.hash(canonical)

    @staticmethod
    def normalise(digest: str) -> str:
        value = (digest or "").strip().lower()
        if value.startswith("0x"):
            value = value[2:]
        return value
