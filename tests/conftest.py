# tests/conftest.py
"""Shared test fixtures and helpers.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import os
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

if TYPE_CHECKING:
    from casket.bootstrap import CasketApp
    from casket.core.storage.database import CasketDB

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


FINGERPRINT_KEY = b"test-fingerprint-key-0123456789"


class FakeClock:
    """Manually advanced UTC clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fingerprint_key() -> bytes:
    return FINGERPRINT_KEY


@pytest.fixture
def db() -> Iterator["CasketDB"]:
    from casket.core.storage.database import CasketDB

    database = CasketDB.in_memory()
    yield database
    database.close()


@pytest.fixture
def app(clock: FakeClock) -> Iterator["CasketApp"]:
    """Fully wired app over an in-memory database and content store."""
    from casket.bootstrap import create_app
    from casket.core.config import CasketSettings

    settings = CasketSettings(
        database={"url": "sqlite:///:memory:"},
        content_store={"backend": "memory"},
        nodes={"chunk_threshold": 64},
        security={"fingerprint_key": FINGERPRINT_KEY.decode()},
    )
    casket = create_app(settings, clock=clock, configure_logs=False)
    yield casket
    casket.close()
