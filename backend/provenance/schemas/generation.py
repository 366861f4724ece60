"""Content generation request/response schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class GenerationRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=2000)
    model: Optional[str] = None  # falls back to Settings.default_model
    submitter_identity: str = Field(min_length=1)


class GenerationResult(BaseModel):
    """Generated text plus everything needed to sign and submit it."""

    prompt: str
    output: str
    model: str
    submitter_identity: str
    output_hash: str
    message_to_sign: str
