"""Generates content with Claude and prepares it for a signed submission.

The service never submits anything itself. It returns the output together
with its hash and the exact message the submitter's wallet should sign, so the
client can go straight to ``POST /verifications``.
"""

import logging
from typing import Optional

from provenance.clients.llm_client import LLMClient
from provenance.config import Settings
from provenance.domain.authenticator import build_message
from provenance.domain.integrity import IntegrityChecker
from provenance.schemas.generation import GenerationRequest, GenerationResult

logger = logging.getLogger(__name__)


class GenerationService:
    def __init__(
        self,
        llm_client: LLMClient,
        settings: Settings,
        integrity: Optional[IntegrityChecker] = None,
    ):
        self.llm = llm_client
        self.settings = settings
        self.integrity = integrity or IntegrityChecker()

    def generate(self, request: GenerationRequest) -> GenerationResult:
        model = request.model or self.settings.default_model
        if model not in self.settings.supported_models:
            raise ValueError(
                f"Unsupported model '{model}'. Choose one of: {', '.join(self.settings.supported_models)}"
            )

        output = self.llm.generate(request.prompt, model)
        output_hash = self.integrity.hash(output)
        logger.info("Generated content for %s with %s (hash %s)", request.submitter_identity, model, output_hash)

        return GenerationResult(
            prompt=request.prompt,
            output=output,
            model=model,
            submitter_identity=request.submitter_identity,
            output_hash=output_hash,
            message_to_sign=build_message(output_hash),
        )
