"""
Checklist Hub
Scheduled Jobs.

Concrete job implementations triggered by the external scheduler through
``flask run-job <name>``.

Jobs:
    - checklist_overdue_sweep: in-progress runs past their escalation deadline → overdue
    - checklist_period_close:  open runs whose occurrence window has ended → failed
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from checklist_hub.services import run_lifecycle
from checklist_hub.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Overdue Sweep
# ═══════════════════════════════════════════════════════════════════════════

@register_job("checklist_overdue_sweep")
def sweep_overdue_runs(app) -> dict[str, Any]:
    """Mark in-progress checklist runs past their escalation deadline as overdue."""
    results = run_lifecycle.sweep_overdue(datetime.now(timezone.utc))
    logger.info("Overdue sweep: %s", results, extra={"job_name": "checklist_overdue_sweep"})
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Period Close-out
# ═══════════════════════════════════════════════════════════════════════════

@register_job("checklist_period_close")
def close_out_periods(app) -> dict[str, Any]:
    """Fail open checklist runs whose day, week or month has ended."""
    results = run_lifecycle.close_out_period(datetime.now(timezone.utc))
    logger.info("Period close-out: %s", results, extra={"job_name": "checklist_period_close"})
    return results
