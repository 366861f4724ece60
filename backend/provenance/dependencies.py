"""Dependency functions for FastAPI.

Every service is built by the ``AppContainer`` stored on ``app.state`` at
startup; these functions only hand the container's providers to endpoints.
Tests override a provider on the container instead of patching imports.
"""

from fastapi import Request

from provenance.config import Settings
from provenance.container import AppContainer
from provenance.services.challenge_service import ChallengeManager
from provenance.services.generation_service import GenerationService
from provenance.services.orchestrator import VerificationOrchestrator


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_settings(request: Request) -> Settings:
    return get_container(request).settings()


def get_orchestrator(request: Request) -> VerificationOrchestrator:
    return get_container(request).orchestrator()


def get_challenge_manager(request: Request) -> ChallengeManager:
    return get_container(request).challenge_manager()


def get_generation_service(request: Request) -> GenerationService:
    return get_container(request).generation_service()
