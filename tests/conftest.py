"""
Pytest configuration and shared fixtures for the oracle agent tests.

This conftest.py:
1. Adds project root to sys.path for imports
2. Provides commonly-used fixtures via pytest's autodiscovery
3. Keeps the process environment from leaking into configuration tests
"""

import sys
from pathlib import Path

import pytest

# =============================================================================
# Path Setup - Must happen before any local imports
# =============================================================================

# Get the project root (parent of tests/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_TESTS_ROOT = Path(__file__).resolve().parent

# Add both project root and tests root to sys.path
for _path in [str(_PROJECT_ROOT), str(_TESTS_ROOT)]:
    if _path not in sys.path:
        sys.path.insert(0, _path)

# =============================================================================
# Import fixtures using importlib (more robust for pytest loading)
# =============================================================================

import importlib

_common = importlib.import_module("fixtures.common")

FakeProofEngine = _common.FakeProofEngine
InMemoryObjectStore = _common.InMemoryObjectStore
StubHttpClient = _common.StubHttpClient
make_aggregation = _common.make_aggregation
make_bundle = _common.make_bundle
make_config = _common.make_config


ORACLE_ENV_VARS = (
    "PRIVATE_KEY",
    "VERIS_ORACLE_V2",
    "BSC_TESTNET_RPC",
    "VERIS_CHAIN_ID",
    "VERIS_CIRCUITS_DIR",
    "SNARKJS_BIN",
    "GREENFIELD_BUCKET",
    "VERIS_STORAGE_ENDPOINTS",
    "VERIS_STORAGE_ACCESS_KEY",
    "VERIS_STORAGE_SECRET_KEY",
    "VERIS_INTERVAL_S",
    "VERIS_LOG_DIR",
    "VERIS_LOG_LEVEL",
)


# =============================================================================
# Pytest Fixtures (autodiscovered by pytest)
# =============================================================================

@pytest.fixture
def clean_env(monkeypatch):
    """Remove every oracle environment variable for the duration of a test."""
    for name in ORACLE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def fake_engine():
    """Provide a FakeProofEngine that proves and verifies honestly."""
    return FakeProofEngine()


@pytest.fixture
def memory_store():
    """Provide an empty InMemoryObjectStore."""
    return InMemoryObjectStore()


@pytest.fixture
def bundle():
    """Provide a locally verified ProofBundle for $350.00."""
    return make_bundle()


@pytest.fixture
def aggregation():
    """Provide a three-source AggregationResult."""
    return make_aggregation()


@pytest.fixture
def runtime_config(tmp_path):
    """Provide a RuntimeConfig rooted in tmp_path with circuit artifacts present."""
    return make_config(tmp_path)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
