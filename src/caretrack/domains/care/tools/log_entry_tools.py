"""MCP tools for writing daily care logs.

Each tool appends one immutable entry to the encrypted log store. The first
entry also fixes the user's first-use date, which baselines count from.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import date
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from caretrack.core.storage.models import VITAL_FIELDS
from caretrack.core.storage.repository import RepositoryError

if TYPE_CHECKING:
    from caretrack.core.audit.logger import AuditLogger
    from caretrack.core.storage.repository import CareRepository
    from caretrack.domains.care.domain_logic.baseline_engine import BaselineEngine

logger = logging.getLogger(__name__)

MEAL_NAMES = ("breakfast", "lunch", "dinner", "snack")


def register_log_entry_tools(
    mcp: FastMCP,
    repository: CareRepository,
    baselines: BaselineEngine,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register log entry tools on the MCP server."""

    def _save(tool_name: str, category: str, payload: dict[str, Any], timestamp: str) -> str:
        start_time = time.monotonic()
        try:
            log = repository.append_log(category, payload, timestamp=timestamp or None)
            baselines.record_first_use(log.date)
        except RepositoryError as exc:
            if audit_logger is not None:
                audit_logger.log_tool_call(
                    tool_name, payload, status="failure", error_type=type(exc).__name__
                )
            return json.dumps({"status": "error", "message": str(exc)})

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name,
                payload,
                record_id=log.id,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )
        logger.info("Saved %s log %s", category, log.id)
        return json.dumps({
            "status": "saved",
            "log_id": log.id,
            "category": category,
            "date": log.date.isoformat(),
        })

    def _error(message: str) -> str:
        return json.dumps({"status": "error", "message": message})

    @mcp.tool
    async def log_meal(
        ctx: Context,
        meals: list[str],
        timestamp: str = "",
        notes: str = "",
    ) -> str:
        """Record meals eaten.

        Args:
            meals: Meals in this entry, e.g. ['breakfast'] or ['lunch', 'snack'].
            timestamp: ISO 8601 instant. Defaults to now.
            notes: Optional notes.
        """
        if not meals:
            return _error("At least one meal is required.")
        unknown = [m for m in meals if m.lower() not in MEAL_NAMES]
        if unknown:
            return _error(f"Unknown meals {unknown}; use {', '.join(MEAL_NAMES)}.")
        payload: dict[str, Any] = {"meals": [m.lower() for m in meals]}
        if notes:
            payload["notes"] = notes
        return _save("log_meal", "meals", payload, timestamp)

    @mcp.tool
    async def log_vitals(
        ctx: Context,
        systolic: float | None = None,
        diastolic: float | None = None,
        heart_rate: float | None = None,
        temperature: float | None = None,
        glucose: float | None = None,
        weight: float | None = None,
        oxygen: float | None = None,
        timestamp: str = "",
    ) -> str:
        """Record one set of vital signs. Provide any subset.

        Args:
            systolic: Systolic blood pressure (top number).
            diastolic: Diastolic blood pressure (bottom number).
            heart_rate: Heart rate in BPM.
            temperature: Body temperature.
            glucose: Blood glucose.
            weight: Body weight.
            oxygen: Blood oxygen saturation percentage.
            timestamp: ISO 8601 instant. Defaults to now.
        """
        given = {
            "systolic": systolic,
            "diastolic": diastolic,
            "heart_rate": heart_rate,
            "temperature": temperature,
            "glucose": glucose,
            "weight": weight,
            "oxygen": oxygen,
        }
        payload = {name: given[name] for name in VITAL_FIELDS if given[name] is not None}
        if not payload:
            return _error("No vitals provided")
        negative = [name for name, value in payload.items() if value < 0]
        if negative:
            return _error(f"Vitals must not be negative: {negative}")
        return _save("log_vitals", "vitals", payload, timestamp)

    @mcp.tool
    async def log_medication(
        ctx: Context,
        obligation_id: str = "",
        name: str = "",
        taken: bool = True,
        timestamp: str = "",
    ) -> str:
        """Record a dose as taken (or explicitly skipped).

        Args:
            obligation_id: The care obligation this dose belongs to.
            name: Medication name, used when there is no obligation.
            taken: False to record a skipped dose.
            timestamp: ISO 8601 instant. Defaults to now.
        """
        if obligation_id:
            obligation = repository.get_obligation(obligation_id)
            if obligation is None:
                return _error(f"No obligation found with ID {obligation_id}.")
            name = name or obligation.name
        if not name:
            return _error("Provide an obligation_id or a medication name.")
        payload = {"obligation_id": obligation_id or None, "name": name, "taken": taken}
        return _save("log_medication", "medications", payload, timestamp)

    @mcp.tool
    async def log_mood(ctx: Context, mood: int, timestamp: str = "", notes: str = "") -> str:
        """Record mood on a 0-10 scale (0 = very low, 10 = very good)."""
        if not 0 <= mood <= 10:
            return _error("mood must be between 0 and 10.")
        payload: dict[str, Any] = {"mood": mood}
        if notes:
            payload["notes"] = notes
        return _save("log_mood", "mood", payload, timestamp)

    @mcp.tool
    async def log_sleep(ctx: Context, hours: float, quality: int | None = None, timestamp: str = "") -> str:
        """Record hours slept, optionally with a 1-5 quality rating."""
        if not 0 <= hours <= 24:
            return _error("hours must be between 0 and 24.")
        if quality is not None and not 1 <= quality <= 5:
            return _error("quality must be between 1 and 5.")
        payload: dict[str, Any] = {"hours": hours}
        if quality is not None:
            payload["quality"] = quality
        return _save("log_sleep", "sleep", payload, timestamp)

    @mcp.tool
    async def log_symptom(
        ctx: Context,
        symptom: str,
        severity: int,
        timestamp: str = "",
        notes: str = "",
    ) -> str:
        """Record a symptom with severity 0-10, e.g. pain, fatigue, nausea, dizziness."""
        if not symptom.strip():
            return _error("symptom is required.")
        if not 0 <= severity <= 10:
            return _error("severity must be between 0 and 10.")
        payload: dict[str, Any] = {"symptom": symptom.strip().lower(), "severity": severity}
        if notes:
            payload["notes"] = notes
        return _save("log_symptom", "symptoms", payload, timestamp)

    @mcp.tool
    async def log_hydration(ctx: Context, cups: float, timestamp: str = "") -> str:
        """Record fluid intake in cups."""
        if cups <= 0:
            return _error("cups must be positive.")
        return _save("log_hydration", "hydration", {"cups": cups}, timestamp)

    @mcp.tool
    async def list_care_logs(
        ctx: Context,
        category: str = "",
        start_date: str = "",
        end_date: str = "",
    ) -> str:
        """List logs, oldest first.

        Args:
            category: Optional log category filter.
            start_date: Optional first day (YYYY-MM-DD).
            end_date: Optional last day (YYYY-MM-DD).
        """
        try:
            start = date.fromisoformat(start_date) if start_date else None
            end = date.fromisoformat(end_date) if end_date else None
            logs = repository.list_logs(category or None, start=start, end=end)
        except (ValueError, RepositoryError) as exc:
            return _error(str(exc))
        return json.dumps({
            "status": "ok",
            "count": len(logs),
            "logs": [log.to_dict() for log in logs],
        })
