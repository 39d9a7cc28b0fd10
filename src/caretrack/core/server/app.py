"""CareTrack MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from caretrack.core.audit.logger import AuditLogger
from caretrack.core.clock.calendar import Clock, SystemClock
from caretrack.core.config.settings import get_settings
from caretrack.core.storage.database import CareDatabase
from caretrack.core.storage.encryption import EncryptionError, FieldEncryptor
from caretrack.core.storage.preferences import PreferenceStore
from caretrack.core.storage.repository import CareRepository
from caretrack.domains.care.domain_logic.baseline_engine import BaselineEngine
from caretrack.domains.care.domain_logic.care_prompts import PromptSession
from caretrack.domains.care.domain_logic.correlation_detector import (
    CorrelationDetector,
    CorrelationSource,
)
from caretrack.domains.care.domain_logic.insight_aggregator import InsightAggregator
from caretrack.domains.care.domain_logic.insight_rules import InsightRuleEngine, RuleEngine
from caretrack.domains.care.domain_logic.reminder_scheduler import ReminderScheduler
from caretrack.domains.care.domain_logic.settings_store import SettingsStore
from caretrack.domains.care.notifier import DeviceNotifier
from caretrack.domains.care.notifier.memory import InMemoryNotifier
from caretrack.domains.care.sources.completions import RepositoryCompletionRecorder
from caretrack.domains.care.tools.audit_tools import register_audit_tools
from caretrack.domains.care.tools.data_management_tools import register_data_management_tools
from caretrack.domains.care.tools.insight_tools import register_insight_tools
from caretrack.domains.care.tools.log_entry_tools import register_log_entry_tools
from caretrack.domains.care.tools.reminder_tools import register_reminder_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "CareTrack"
SERVER_VERSION = "0.1.0"


def _open_repository(db_path: str, encryption_key: str, clock: Clock) -> CareRepository:
    """Encrypted on-disk store, or an in-memory one when no key is configured."""
    if encryption_key:
        try:
            encryptor = FieldEncryptor(encryption_key)
            care_db = CareDatabase(db_path)
            care_db.initialize()
            logger.info(
                "Care data store initialized: %s (schema v%d)",
                db_path,
                care_db.get_schema_version(),
            )
            return CareRepository(care_db, encryptor, clock=clock)
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)

    logger.warning(
        "No usable ENCRYPTION_KEY configured; care data is kept in memory only "
        "and is lost when the server stops."
    )
    care_db = CareDatabase(":memory:")
    care_db.initialize()
    return CareRepository(care_db, FieldEncryptor.ephemeral(), clock=clock)


def create_app(
    *,
    repository_override: CareRepository | None = None,
    notifier_override: DeviceNotifier | None = None,
    clock_override: Clock | None = None,
    correlation_source_override: CorrelationSource | None = None,
    rule_engine_override: RuleEngine | None = None,
) -> FastMCP:
    """Create and configure the CareTrack MCP server.

    This is the main application factory. It:
    1. Opens the encrypted care data store
    2. Creates the reminder scheduler over the device notifier
    3. Creates the baseline engine and insight aggregator
    4. Registers all tools
    5. Rebuilds reminders from stored obligations
    """
    settings = get_settings()
    clock = clock_override or SystemClock()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "CareTrack: a caregiver's daily care log. Records meals, vitals, "
            "medications, mood, sleep, symptoms and hydration; keeps medication "
            "reminders in sync with care obligations; and derives baselines and "
            "pattern insights from the log history."
        ),
    )

    # --- Storage ---
    if repository_override is not None:
        repository = repository_override
    else:
        repository = _open_repository(settings.db_path, settings.encryption_key, clock)

    preferences = PreferenceStore(repository.database)
    audit_logger = AuditLogger(repository.database)

    # --- Reminders ---
    if notifier_override is not None:
        notifier = notifier_override
    else:
        notifier = InMemoryNotifier()
        logger.info("Using in-memory device notifier")

    settings_store = SettingsStore(preferences)
    scheduler = ReminderScheduler(
        notifier,
        settings_store,
        obligations=repository,
        completions=RepositoryCompletionRecorder(repository),
        clock=clock,
        medication_snooze_minutes=settings.medication_snooze_minutes,
        appointment_snooze_minutes=settings.appointment_snooze_minutes,
    )

    # --- Baselines and insights ---
    baselines = BaselineEngine(repository, preferences, clock=clock)
    aggregator = InsightAggregator(
        repository,
        preferences,
        baselines,
        rule_engine=rule_engine_override or InsightRuleEngine(),
        correlation_source=correlation_source_override or CorrelationDetector(repository, repository),
        obligations=repository,
        clock=clock,
    )
    prompt_session = PromptSession(clock=clock)

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "persistent_storage": repository.database.is_persistent,
            "logs_stored": repository.count_logs(),
            "active_obligations": len(repository.list_obligations(active_only=True)),
            "reminders_scheduled": len(scheduler.triggers),
            "notification_permission": notifier.has_permission(),
        }

    register_log_entry_tools(server, repository, baselines, audit_logger)
    register_reminder_tools(server, scheduler, settings_store, repository, audit_logger)
    register_insight_tools(server, baselines, aggregator, prompt_session, audit_logger)
    register_data_management_tools(server, repository, preferences, scheduler, audit_logger)
    register_audit_tools(server, audit_logger)
    logger.info("CareTrack tools registered")

    triggers = scheduler.reschedule_all()
    logger.info("Scheduled %d recurring reminders at startup", len(triggers))

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this attribute is first accessed (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
