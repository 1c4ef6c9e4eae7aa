"""
Content OS Workflow Platform
Scheduled Jobs.

Jobs:
    - sla_monitor: overdue / at-risk sweep with escalation
"""

from __future__ import annotations

import logging
from typing import Any

from osflow.services.notifier import Notifier
from osflow.services.scheduler_service import register_job
from osflow.services.sla_monitor import SLAMonitor

logger = logging.getLogger(__name__)


@register_job("sla_monitor")
def run_sla_monitor(app) -> dict[str, Any]:
    """Sweep active orders for missed or imminent SLA deadlines."""
    notifier = app.extensions.get("notifier") or Notifier.from_config(app.config)
    monitor = SLAMonitor(notifier=notifier)
    result = monitor.sweep()
    return result.to_dict()
