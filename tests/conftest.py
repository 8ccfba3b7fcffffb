"""
Pytest configuration and shared fixtures for DaggerGM tests.

This module provides common fixtures used across all test files:
- Environment setup before the server module is imported
- In-memory stores, limiter and ledger
- A FastAPI test client wired to in-memory backends and a fake generator
"""

import os
import sys
import uuid

import pytest

# Environment setup before any imports
os.environ["ENVIRONMENT"] = "development"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["REQUEST_LOGGING_ENABLED"] = "false"
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("STRIPE_WEBHOOK_SECRET", None)
os.environ.pop("SUPABASE_URL", None)

# Ensure project root and this directory are in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from fakes import WEBHOOK_SECRET, FakeAdventureGenerator  # noqa: E402



@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def credit_store():
    from daggergm.credits import InMemoryCreditStore

    return InMemoryCreditStore()


@pytest.fixture
def regeneration_store():
    from daggergm.regeneration import InMemoryRegenerationStore

    return InMemoryRegenerationStore()


@pytest.fixture
def generator():
    return FakeAdventureGenerator()


@pytest.fixture
def test_settings():
    """Settings with Stripe configured so checkout and webhooks are reachable."""
    from daggergm.config import Settings, StripeSettings

    return Settings(
        stripe=StripeSettings(
            stripe_secret_key="sk_test_unit",
            stripe_webhook_secret=WEBHOOK_SECRET,
        ),
    )


@pytest.fixture
def test_app(test_settings, credit_store, regeneration_store, generator):
    from server import create_app

    return create_app(
        test_settings,
        credit_store=credit_store,
        regeneration_store=regeneration_store,
        generator=generator,
    )


@pytest.fixture
def client(test_app):
    """FastAPI test client fixture."""
    from fastapi.testclient import TestClient

    with TestClient(test_app) as test_client:
        yield test_client


@pytest.fixture
def sample_adventure_request():
    return {
        "length": "oneshot",
        "primary_motif": "a drowned bell tower",
        "party_size": 4,
        "party_level": 2,
    }


@pytest.fixture(autouse=True)
def reset_environment():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
