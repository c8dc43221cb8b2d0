"""
Structured tracing for report generation.
Generates a unique trace_id per report and tracks timing/metadata through
every pipeline step. Outputs structured JSON log lines for observability.

Usage:
    from tracing import Trace

    trace = Trace('category_report', filters)
    trace.step("extract", product_rows=len(rows))
    trace.step("resolve_budget", mode=budget_map.mode)
    ...
    trace.finish(categories=12)
"""

import json
import logging
import time
import uuid
from typing import Any, Dict, Optional

logger = logging.getLogger("budget_reports.trace")


class Trace:
    """Structured trace for a single report build."""

    def __init__(self, report: str, filters: Optional[Dict[str, Any]] = None):
        self.trace_id = uuid.uuid4().hex[:12]
        self.report = report
        self.filters = {k: _safe_serialize(v) for k, v in (filters or {}).items() if v not in (None, '')}
        self.start_time = time.time()
        self.steps = []
        self._step_start = self.start_time
        self.metadata = {}

        logger.info("[%s] START %s | filters=%s", self.trace_id, report, self.filters)

    def step(self, name: str, **kwargs):
        """Record a pipeline step with timing and optional metadata."""
        now = time.time()
        elapsed_ms = round((now - self._step_start) * 1000)
        total_ms = round((now - self.start_time) * 1000)

        step_data = {
            "name": name,
            "elapsed_ms": elapsed_ms,
            "total_ms": total_ms,
        }
        if kwargs:
            step_data["data"] = {k: _safe_serialize(v) for k, v in kwargs.items()}

        self.steps.append(step_data)
        self._step_start = now

        data_str = ""
        if kwargs:
            data_str = " | " + " ".join(f"{k}={_safe_serialize(v)}" for k, v in kwargs.items())
        logger.debug("[%s] %s (%sms)%s", self.trace_id, name, elapsed_ms, data_str)

    def set(self, key: str, value: Any):
        """Set metadata on the trace."""
        self.metadata[key] = _safe_serialize(value)

    def finish(self, **kwargs):
        """Complete the trace and log the full structured record."""
        total_ms = round((time.time() - self.start_time) * 1000)

        record = {
            "trace_id": self.trace_id,
            "report": self.report,
            "filters": self.filters,
            "total_ms": total_ms,
            "step_count": len(self.steps),
            "steps": self.steps,
            "metadata": {**self.metadata, **{k: _safe_serialize(v) for k, v in kwargs.items()}},
        }

        step_names = " -> ".join(s["name"] for s in self.steps)
        logger.info("[%s] DONE %s %sms | %s", self.trace_id, self.report, total_ms, step_names)
        logger.debug("[%s] TRACE_RECORD: %s", self.trace_id, json.dumps(record, default=str))

        return record


def _safe_serialize(value: Any) -> Any:
    """Truncate long strings and summarize large collections for logging."""
    if isinstance(value, str):
        return value[:200]
    if isinstance(value, (list, tuple, set)):
        return f"[{len(value)} items]" if len(value) > 5 else list(value)
    if isinstance(value, dict):
        return f"{{{len(value)} keys}}" if len(value) > 5 else value
    if isinstance(value, (int, float, bool, type(None))):
        return value
    return str(value)[:100]
