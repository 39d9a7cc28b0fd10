"""Integration tests for the CareTrack MCP server."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import pytest
from fastmcp import Client

from caretrack.core.clock.calendar import FixedClock
from caretrack.core.server.app import create_app
from caretrack.domains.care.notifier.memory import InMemoryNotifier


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result) -> dict:
    content = getattr(result, "content", result)
    return json.loads(content[0].text)


ALL_EXPECTED_TOOLS = [
    "health_check",
    "log_meal",
    "log_vitals",
    "log_medication",
    "log_mood",
    "log_sleep",
    "log_symptom",
    "log_hydration",
    "list_care_logs",
    "add_care_obligation",
    "list_care_obligations",
    "reschedule_reminders",
    "update_notification_settings",
    "handle_notification_action",
    "schedule_appointment_reminder",
    "get_baselines",
    "get_today_vs_baseline",
    "load_insights",
    "dismiss_suggestion",
    "care_prompt",
    "delete_care_log",
    "purge_old_logs",
    "delete_all_care_data",
    "audit_summary",
]


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def client(notifier):
    """Create an MCP client connected to a fresh in-memory server."""
    mcp = create_app(
        notifier_override=notifier,
        clock_override=FixedClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)),
    )
    return Client(mcp)


def test_server_starts_and_lists_tools(client):
    """Server should start and expose all registered tools."""
    async def _check():
        async with client:
            tools = await client.list_tools()
            tool_names = [t.name for t in tools]
            for expected in ALL_EXPECTED_TOOLS:
                assert expected in tool_names, f"Missing tool: {expected}"
    _run(_check())


def test_health_check_returns_ok(client):
    """health_check should report an empty, non-persistent store."""
    async def _check():
        async with client:
            data = _payload(await client.call_tool("health_check", {}))
            assert data["status"] == "ok"
            assert data["persistent_storage"] is False
            assert data["logs_stored"] == 0
            assert data["reminders_scheduled"] == 0
    _run(_check())


def test_adding_obligation_schedules_reminders(client, notifier):
    async def _check():
        async with client:
            saved = _payload(await client.call_tool(
                "add_care_obligation",
                {"name": "Lisinopril", "time_of_day": "08:00", "dosage": "10mg"},
            ))
            assert saved["status"] == "saved"
            assert saved["triggers_scheduled"] >= 1

            listed = _payload(await client.call_tool("list_care_obligations", {}))
            assert listed["count"] == 1
            assert listed["obligations"][0]["name"] == "Lisinopril"
    _run(_check())
    assert [r.content.title for r in notifier.recurring()].count("Medication Reminder") == 1


def test_invalid_obligation_time_rejected(client):
    async def _check():
        async with client:
            data = _payload(await client.call_tool(
                "add_care_obligation", {"name": "Lisinopril", "time_of_day": "25:00"}
            ))
            assert data["status"] == "error"
    _run(_check())


def test_log_and_list(client):
    async def _check():
        async with client:
            saved = _payload(await client.call_tool("log_meal", {"meals": ["breakfast", "Lunch"]}))
            assert saved["status"] == "saved"
            assert saved["date"] == "2026-03-10"

            rejected = _payload(await client.call_tool("log_mood", {"mood": 11}))
            assert rejected["status"] == "error"

            listed = _payload(await client.call_tool("list_care_logs", {"category": "meals"}))
            assert listed["count"] == 1
            assert listed["logs"][0]["payload"]["meals"] == ["breakfast", "lunch"]
    _run(_check())


def test_fresh_user_sees_sample_insights(client):
    async def _check():
        async with client:
            data = _payload(await client.call_tool("load_insights", {"time_range": 7}))
            assert data["status"] == "ok"
            assert data["is_sample_data"] is True

            bad = _payload(await client.call_tool("load_insights", {"time_range": 10}))
            assert bad["status"] == "error"
    _run(_check())


def test_delete_all_requires_confirmation(client):
    async def _check():
        async with client:
            await client.call_tool("log_hydration", {"cups": 2})

            cancelled = _payload(await client.call_tool("delete_all_care_data", {}))
            assert cancelled["status"] == "cancelled"

            deleted = _payload(await client.call_tool("delete_all_care_data", {"confirm": "DELETE_ALL"}))
            assert deleted["status"] == "all_deleted"
            assert deleted["logs_deleted"] == 1

            health = _payload(await client.call_tool("health_check", {}))
            assert health["logs_stored"] == 0
    _run(_check())


def test_audit_summary_counts_tool_calls(client):
    async def _check():
        async with client:
            await client.call_tool("log_sleep", {"hours": 7.5})
            await client.call_tool("delete_all_care_data", {"confirm": "DELETE_ALL"})
            data = _payload(await client.call_tool("audit_summary", {"days": 7}))
            assert data["total_events"] >= 2
            assert data["deletions"] == 1
            assert all("payload" not in event for event in data["recent_events"])
    _run(_check())
