"""Dependency Injection Container.

Centralized definition of all application dependencies using dependency-injector.

Usage::

    from provenance.container import AppContainer

    container = AppContainer()
    container.init_resources()  # create tables, start the background pool

    orchestrator = container.orchestrator()
    orchestrator.poll_pending()

    container.shutdown_resources()  # drain background work
"""

from dependency_injector import containers, providers

from provenance.clients.attestation_client import AttestationClient
from provenance.clients.certification_client import CertificationClient
from provenance.clients.llm_client import LLMClient
from provenance.config import Settings
from provenance.database import build_engine, build_session_factory, init_db
from provenance.domain.authenticator import ClaimAuthenticator
from provenance.domain.integrity import IntegrityChecker
from provenance.services.challenge_service import ChallengeManager
from provenance.services.dispatcher import BackgroundDispatcher
from provenance.services.generation_service import GenerationService
from provenance.services.orchestrator import VerificationOrchestrator
from provenance.store import VerificationStore


def _init_dispatcher(max_workers: int):
    """Background pool as a resource: drained on ``shutdown_resources``."""
    dispatcher = BackgroundDispatcher(max_workers=max_workers)
    yield dispatcher
    dispatcher.shutdown(wait_for_tasks=True)


class AppContainer(containers.DeclarativeContainer):
    """Application Dependency Injection Container.

    Defines all application dependencies in one place:
    - Configuration (Settings)
    - Database (engine, session factory, store)
    - Clients (attestation network, ledger gateway, Claude)
    - Services (orchestration)

    Every provider that holds state is a Singleton: the store opens its own
    session per call, so nothing here is scoped to a request.
    """

    # ══════════════════════════════════════════════════════════════════
    # CONFIGURATION
    # ══════════════════════════════════════════════════════════════════

    settings = providers.Singleton(Settings)

    # ══════════════════════════════════════════════════════════════════
    # DATABASE
    # ══════════════════════════════════════════════════════════════════

    db_engine = providers.Singleton(
        build_engine,
        database_url=settings.provided.database_url,
        echo=False,
    )

    db_initialized = providers.Resource(
        init_db,
        engine=db_engine,
    )

    session_factory = providers.Singleton(
        build_session_factory,
        engine=db_engine,
    )

    store = providers.Singleton(
        VerificationStore,
        session_factory=session_factory,
    )

    # ══════════════════════════════════════════════════════════════════
    # EXTERNAL CLIENTS (Infrastructure)
    # ══════════════════════════════════════════════════════════════════

    attestation_client = providers.Singleton(
        AttestationClient,
        base_url=settings.provided.attestation_api_url,
        api_key=settings.provided.attestation_api_key,
        timeout=settings.provided.attestation_timeout_seconds,
        retry_max_attempts=settings.provided.attestation_retry_max_attempts,
        retry_initial_delay=settings.provided.attestation_retry_initial_delay,
    )

    certification_client = providers.Singleton(
        CertificationClient,
        base_url=settings.provided.certification_api_url,
        api_key=settings.provided.certification_api_key,
        timeout=settings.provided.certification_timeout_seconds,
    )

    llm_client = providers.Singleton(
        LLMClient,
        api_key=settings.provided.anthropic_api_key,
        max_tokens=settings.provided.generation_max_tokens,
    )

    # ══════════════════════════════════════════════════════════════════
    # DOMAIN
    # ══════════════════════════════════════════════════════════════════

    integrity = providers.Singleton(IntegrityChecker)

    authenticator = providers.Singleton(ClaimAuthenticator)

    dispatcher = providers.Resource(
        _init_dispatcher,
        max_workers=settings.provided.background_workers,
    )

    # ══════════════════════════════════════════════════════════════════
    # SERVICES (Orchestration Layer)
    # ══════════════════════════════════════════════════════════════════

    orchestrator = providers.Singleton(
        VerificationOrchestrator,
        store=store,
        attestation_client=attestation_client,
        dispatcher=dispatcher,
        integrity=integrity,
        authenticator=authenticator,
        certification_client=certification_client,
        settings=settings,
    )

    challenge_manager = providers.Singleton(
        ChallengeManager,
        store=store,
    )

    generation_service = providers.Factory(
        GenerationService,
        llm_client=llm_client,
        settings=settings,
        integrity=integrity,
    )
