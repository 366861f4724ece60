"""Application configuration loaded from environment variables."""

import os
from pathlib import Path
from pydantic_settings import BaseSettings

# Check if .env file exists and is readable
_env_file = None
try:
    env_path = Path(".env")
    if env_path.exists() and os.access(env_path, os.R_OK):
        _env_file = ".env"
except (OSError, PermissionError):
    # If we can't access .env, continue without it
    pass


class Settings(BaseSettings):
    """All configuration for the provenance verifier.

    Values are loaded from environment variables or a .env file.
    """

    # Application
    app_name: str = "provenance-verifier"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./data/provenance.db"

    # Attestation network
    attestation_api_url: str = "https://fdc-api.flare.network"
    attestation_api_key: str = ""
    attestation_timeout_seconds: float = 30.0
    attestation_retry_max_attempts: int = 3  # per call, inside the client
    attestation_retry_initial_delay: float = 1.0
    attestation_transient_resubmits: int = 1  # extra submissions after a transient failure
    attestation_callback_url: str = ""  # registered with the network when set
    verify_proofs_on_resolve: bool = False

    # Certification (ledger / NFT minting)
    certification_api_url: str = ""
    certification_api_key: str = ""
    certification_timeout_seconds: float = 60.0

    # Submission policy
    require_signature: bool = False

    # Background work
    background_workers: int = 4
    stale_submission_seconds: int = 300  # pending without attestation id gets re-dispatched
    poll_batch_size: int = 50

    # Content generation (Anthropic Claude API)
    anthropic_api_key: str = ""
    default_model: str = "claude-sonnet-4-20250514"
    supported_models: list[str] = [
        "claude-sonnet-4-20250514",
        "claude-opus-4-20250514",
        "claude-3-5-haiku-20241022",
    ]
    generation_max_tokens: int = 4096

    model_config = {
        "env_file": _env_file,
        "env_file_encoding": "utf-8",
        "env_file_ignore_empty": True,
    }
