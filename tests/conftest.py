"""Shared test fixtures for CareTrack tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", ":memory:")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from caretrack.core.clock.calendar import FixedClock  # noqa: E402

# Tuesday morning, UTC. Most scenarios are anchored here.
FIXED_NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock(FIXED_NOW)


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def care_db():
    """Create an in-memory CareDatabase for testing."""
    from caretrack.core.storage.database import CareDatabase

    db = CareDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from caretrack.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def care_repository(care_db, field_encryptor, fixed_clock):
    """Create a CareRepository backed by in-memory SQLite."""
    from caretrack.core.storage.repository import CareRepository

    return CareRepository(care_db, field_encryptor, clock=fixed_clock)


@pytest.fixture
def preferences(care_db):
    from caretrack.core.storage.preferences import PreferenceStore

    return PreferenceStore(care_db)


@pytest.fixture
def audit_logger(care_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from caretrack.core.audit.logger import AuditLogger

    return AuditLogger(care_db)


# ---------------------------------------------------------------------------
# Reminder fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def notifier():
    from caretrack.domains.care.notifier.memory import InMemoryNotifier

    return InMemoryNotifier()


@pytest.fixture
def settings_store(preferences):
    from caretrack.domains.care.domain_logic.settings_store import SettingsStore

    return SettingsStore(preferences)


@pytest.fixture
def completions(care_repository):
    from caretrack.domains.care.sources.completions import RepositoryCompletionRecorder

    return RepositoryCompletionRecorder(care_repository)


@pytest.fixture
def scheduler(notifier, settings_store, care_repository, completions, fixed_clock):
    from caretrack.domains.care.domain_logic.reminder_scheduler import ReminderScheduler

    return ReminderScheduler(
        notifier,
        settings_store,
        obligations=care_repository,
        completions=completions,
        clock=fixed_clock,
    )


# ---------------------------------------------------------------------------
# Insight fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def baseline_engine(care_repository, preferences, fixed_clock):
    from caretrack.domains.care.domain_logic.baseline_engine import BaselineEngine

    return BaselineEngine(care_repository, preferences, clock=fixed_clock)
