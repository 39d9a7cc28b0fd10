"""MCP tools for baselines, the insights page and supportive prompts."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from caretrack.core.clock.calendar import parse_instant
from caretrack.domains.care.domain_logic.baseline_engine import (
    BASELINE_CATEGORIES,
    baseline_language,
    describe_baseline,
)
from caretrack.domains.care.domain_logic.care_prompts import PromptContext
from caretrack.domains.care.domain_logic.insight_models import TIME_RANGES

if TYPE_CHECKING:
    from caretrack.core.audit.logger import AuditLogger
    from caretrack.domains.care.domain_logic.baseline_engine import BaselineEngine
    from caretrack.domains.care.domain_logic.care_prompts import PromptSession
    from caretrack.domains.care.domain_logic.insight_aggregator import InsightAggregator

logger = logging.getLogger(__name__)


def _invalid_category(category: str) -> str | None:
    if category in BASELINE_CATEGORIES:
        return None
    return json.dumps({
        "status": "error",
        "message": f"category must be one of: {', '.join(BASELINE_CATEGORIES)}",
    })


def register_insight_tools(
    mcp: FastMCP,
    baselines: BaselineEngine,
    aggregator: InsightAggregator,
    prompt_session: PromptSession,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register baseline, insight and prompt tools on the MCP server."""

    def _audit(tool_name: str, tool_input: Any, start_time: float) -> None:
        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name,
                tool_input,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

    # ------------------------------------------------------------------
    # Baselines
    # ------------------------------------------------------------------

    @mcp.tool
    async def get_baselines(ctx: Context) -> str:
        """Typical daily counts for meals, vitals and medications.

        A category appears only once at least 3 days have activity in it.
        """
        start_time = time.monotonic()
        data = baselines.get_all_baselines()
        payload = data.to_dict()
        for category in BASELINE_CATEGORIES:
            baseline = data.get(category)
            if baseline is not None:
                payload[category]["description"] = describe_baseline(baseline)
                payload[category]["language"] = baseline_language(baseline)
        next_prompt = baselines.next_baseline_to_confirm()
        payload["next_to_confirm"] = next_prompt.category if next_prompt else None
        _audit("get_baselines", None, start_time)
        return json.dumps({"status": "ok", **payload})

    @mcp.tool
    async def get_today_vs_baseline(ctx: Context) -> str:
        """Compare today's counts with each available baseline."""
        start_time = time.monotonic()
        comparisons = baselines.get_all_today_vs_baseline()
        _audit("get_today_vs_baseline", None, start_time)
        return json.dumps({
            "status": "ok",
            "comparisons": [c.to_dict() for c in comparisons],
        })

    @mcp.tool
    async def confirm_baseline(ctx: Context, category: str) -> str:
        """Confirm "yes, that's my usual" for a baseline category."""
        error = _invalid_category(category)
        if error is not None:
            return error
        baselines.confirm_baseline(category)
        return json.dumps({"status": "confirmed", "category": category})

    @mcp.tool
    async def reject_baseline(ctx: Context, category: str) -> str:
        """Withdraw a confirmation. The baseline keeps updating from new logs."""
        error = _invalid_category(category)
        if error is not None:
            return error
        baselines.reject_baseline(category)
        return json.dumps({"status": "rejected", "category": category})

    @mcp.tool
    async def dismiss_baseline_prompt(ctx: Context, category: str) -> str:
        """Stop asking to confirm this category's baseline."""
        error = _invalid_category(category)
        if error is not None:
            return error
        baselines.dismiss_baseline_prompt(category)
        return json.dumps({"status": "dismissed", "category": category})

    # ------------------------------------------------------------------
    # Insights page
    # ------------------------------------------------------------------

    @mcp.tool
    async def load_insights(ctx: Context, time_range: int = 7) -> str:
        """Stand-out insights, positive observations and correlation cards.

        Users with under 5 days of history and no detectable pattern get a
        clearly flagged sample page (``is_sample_data``).

        Args:
            time_range: 7, 14 or 30 days.
        """
        if time_range not in TIME_RANGES:
            return json.dumps({
                "status": "error",
                "message": "time_range must be 7, 14 or 30.",
            })
        start_time = time.monotonic()
        page = aggregator.load_insight_data(time_range)
        _audit("load_insights", {"time_range": time_range}, start_time)
        return json.dumps({"status": "ok", **page.to_dict()}, indent=2)

    @mcp.tool
    async def dismiss_suggestion(ctx: Context, suggestion_id: str) -> str:
        """Hide a correlation card's suggestion. The card itself stays."""
        aggregator.dismiss_suggestion(suggestion_id)
        return json.dumps({"status": "dismissed", "suggestion_id": suggestion_id})

    @mcp.tool
    async def dismiss_sample_data(ctx: Context) -> str:
        """Stop showing the sample insights page."""
        aggregator.dismiss_sample_data()
        return json.dumps({"status": "dismissed"})

    @mcp.tool
    async def mark_confidence_explained(ctx: Context) -> str:
        """Record that the confidence-level explanation has been shown."""
        aggregator.mark_confidence_explained()
        return json.dumps({"status": "ok"})

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    @mcp.tool
    async def record_navigation(ctx: Context) -> str:
        """Note a screen change for this session's navigation history."""
        prompt_session.record_navigation()
        return json.dumps({"status": "ok", "rapid": prompt_session.navigation.is_rapid()})

    @mcp.tool
    async def care_prompt(
        ctx: Context,
        mood: int | None = None,
        overdue_count: int = 0,
        last_log_at: str = "",
    ) -> str:
        """A short supportive message suited to the current moment.

        Args:
            mood: Latest mood score (0-10), if known.
            overdue_count: Doses currently overdue.
            last_log_at: ISO 8601 instant of the most recent log entry.
        """
        try:
            last = parse_instant(last_log_at) if last_log_at else None
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        prompt = prompt_session.next_prompt(PromptContext(
            mood=mood, overdue_count=overdue_count, last_log_at=last
        ))
        return json.dumps({"status": "ok", **prompt})
