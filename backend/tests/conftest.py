"""Shared test fixtures.

Every test gets a fresh SQLite database file under ``tmp_path`` so tests are
fully isolated and background workers can open their own connections.
"""

from unittest.mock import MagicMock

import pytest
from eth_account import Account

from provenance.clients.attestation_client import AttestationClient
from provenance.config import Settings
from provenance.database import build_engine, build_session_factory, init_db
from provenance.services.dispatcher import BackgroundDispatcher
from provenance.services.orchestrator import VerificationOrchestrator
from provenance.store import VerificationStore
from tests.fixtures import OTHER_KEY, SUBMITTER_KEY


@pytest.fixture()
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'provenance.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture()
def store(session_factory) -> VerificationStore:
    return VerificationStore(session_factory)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        attestation_api_url="https://attest.test",
        attestation_transient_resubmits=1,
        attestation_callback_url="",
        verify_proofs_on_resolve=False,
        require_signature=False,
        stale_submission_seconds=300,
        poll_batch_size=50,
        anthropic_api_key="",
    )


@pytest.fixture()
def dispatcher():
    d = BackgroundDispatcher(max_workers=2)
    yield d
    d.shutdown(wait_for_tasks=True)


@pytest.fixture()
def attestation_client() -> MagicMock:
    client = MagicMock(spec=AttestationClient)
    client.submit.return_value = "att_1"
    client.verify_proof.return_value = True
    client.subscribe.return_value = "sub_1"
    return client


@pytest.fixture()
def orchestrator(store, attestation_client, dispatcher, settings) -> VerificationOrchestrator:
    return VerificationOrchestrator(
        store=store,
        attestation_client=attestation_client,
        dispatcher=dispatcher,
        settings=settings,
    )


@pytest.fixture()
def submitter():
    return Account.from_key(SUBMITTER_KEY)


@pytest.fixture()
def other_account():
    return Account.from_key(OTHER_KEY)
