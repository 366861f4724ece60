"""Wrapper around the Anthropic Claude API for content generation."""

import logging

import anthropic

from provenance.utils.retry import with_retry

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the user's prompt directly. "
    "Your answer will be hashed and attested as AI-generated content, "
    "so do not add preambles or sign-offs."
)


class LLMClient:
    """Handles all LLM interactions.

    Responsibilities:
    - Send a prompt to the requested model
    - Return the concatenated text blocks
    - Track token usage
    - Retry on transient failures
    """

    def __init__(
        self,
        api_key: str,
        max_tokens: int = 4096,
    ):
        self.client = anthropic.Anthropic(api_key=api_key)
        self.max_tokens = max_tokens
        self.total_input_tokens: int = 0
        self.total_output_tokens: int = 0

    @with_retry(
        max_attempts=3,
        initial_delay=2.0,  # Claude API is slower, start with 2s
        retry_on=(
            anthropic.APITimeoutError,
            anthropic.APIConnectionError,
            anthropic.RateLimitError,
            anthropic.InternalServerError,
        ),
        reraise_on=(
            anthropic.BadRequestError,  # Invalid prompt - don't retry
            anthropic.AuthenticationError,  # Bad API key - don't retry
        ),
    )
    def generate(self, prompt: str, model: str) -> str:
        """Generate a completion for ``prompt`` with ``model``.

        Retries on:
        - Timeouts and network errors
        - Rate limits
        - 5xx from Anthropic

        Does NOT retry on:
        - Bad request (invalid prompt or model)
        - Authentication errors
        """
        message = self.client.messages.create(
            model=model,
            max_tokens=self.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )

        self.total_input_tokens += message.usage.input_tokens
        self.total_output_tokens += message.usage.output_tokens

        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        logger.info(
            "Generated %d chars with %s (%d in / %d out tokens)",
            len(text),
            model,
            message.usage.input_tokens,
            message.usage.output_tokens,
        )
        return text
