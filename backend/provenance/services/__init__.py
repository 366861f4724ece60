"""Service-layer orchestration modules."""

from provenance.services.challenge_service import ChallengeManager
from provenance.services.dispatcher import BackgroundDispatcher
from provenance.services.generation_service import GenerationService
from provenance.services.orchestrator import VerificationOrchestrator

__all__ = [
    "VerificationOrchestrator",
    "ChallengeManager",
    "GenerationService",
    "BackgroundDispatcher",
]
