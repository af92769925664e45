"""Pytest configuration and shared fixtures for all tests."""

import pytest

from execution_evm.execution import EngineAPIExecutionClient
from execution_evm.rpc.auth import JWTCredentialProvider
from execution_evm.rpc.transport import EngineTransport

from tests.fixtures import (
    ENGINE_URL,
    ETH_URL,
    FEE_RECIPIENT,
    FIXED_NOW,
    GENESIS_HASH,
    JWT_SECRET,
    FakeEngine,
)


# =============================================================================
# Credentials
# =============================================================================

@pytest.fixture
def jwt_secret():
    """The 32-byte secret shared with the engine."""
    return JWT_SECRET


@pytest.fixture
def credentials(jwt_secret):
    """Credential provider over the shared secret."""
    return JWTCredentialProvider(jwt_secret)


# =============================================================================
# Engine Fixtures
# =============================================================================

@pytest.fixture
def fake_engine():
    """Scripted engine; queue replies with ``fake_engine.respond``."""
    return FakeEngine()


@pytest.fixture
def engine_transport(fake_engine, credentials):
    """Engine + query channels wired to the fake engine (no connect probe)."""
    transport = EngineTransport.connect(
        ENGINE_URL, ETH_URL, credentials, transport=fake_engine.transport, probe=False,
    )
    yield transport
    transport.close()


@pytest.fixture
def adapter(engine_transport):
    """Engine API execution client with a pinned clock."""
    return EngineAPIExecutionClient(
        engine_transport, GENESIS_HASH, FEE_RECIPIENT, clock=lambda: FIXED_NOW,
    )
