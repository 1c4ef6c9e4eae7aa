"""
Content OS Workflow Platform
Scheduler Service.

Lightweight background job scheduler built on a single daemon thread.

Architecture:
    - Job functions register themselves with ``@register_job(name)``
    - Each job has a ``ScheduledJob`` row holding its interval and run history
    - ``run_job`` executes one job inside the app context (manual API trigger)
    - ``start`` spawns the interval thread when ``SCHEDULER_ENABLED`` is set
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from flask import Flask

from osflow.models import db
from osflow.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("sla_monitor")
        def run_sla_monitor(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Lightweight scheduler service.

    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _thread: threading.Thread | None = None
    _stop_event: threading.Event | None = None
    _last_run: dict[str, float] = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app; start the thread when enabled."""
        cls._app = app
        cls._last_run = {}
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs", len(_job_registry))
        if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
            cls.ensure_jobs_registered()
            cls.start()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job that lacks one."""
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip(),
                        schedule_type="interval",
                        schedule_config=_default_schedule(name, cls._app),
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with cls._app.app_context():
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if job_record:
                    job_record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                    )
                    db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name, extra={"job_name": job_name})

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def run_due_jobs(cls, now: float | None = None) -> list[dict]:
        """Run every enabled job whose interval has elapsed since its last run."""
        now = time.monotonic() if now is None else now
        ran = []
        for name in list(_job_registry):
            interval = _default_schedule(name, cls._app)["seconds"]
            last = cls._last_run.get(name)
            if last is not None and now - last < interval:
                continue
            if not cls._is_enabled(name):
                continue
            cls._last_run[name] = now
            ran.append(cls.run_job(name))
        return ran

    @classmethod
    def start(cls) -> None:
        if cls._thread is not None and cls._thread.is_alive():
            return
        cls._stop_event = threading.Event()
        tick = min(30, min((_default_schedule(n, cls._app)["seconds"] for n in _job_registry), default=30))
        cls._thread = threading.Thread(target=cls._loop, args=(tick,), name="osflow-scheduler", daemon=True)
        cls._thread.start()
        logger.info("Scheduler thread started (tick=%ss)", tick)

    @classmethod
    def stop(cls, timeout: float = 5) -> None:
        if cls._stop_event is not None:
            cls._stop_event.set()
        if cls._thread is not None:
            cls._thread.join(timeout)
        cls._thread = None
        logger.info("Scheduler thread stopped")

    @classmethod
    def _loop(cls, tick: float) -> None:
        while not cls._stop_event.wait(tick):
            try:
                cls.run_due_jobs()
            except Exception:
                logger.exception("Scheduler tick failed")

    @classmethod
    def _is_enabled(cls, job_name: str) -> bool:
        with cls._app.app_context():
            record = ScheduledJob.query.filter_by(job_name=job_name).first()
            return record is None or bool(record.is_enabled)

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()


def _default_schedule(job_name: str, app: Flask | None) -> dict:
    """Interval config for known jobs."""
    config = app.config if app is not None else {}
    defaults = {
        "sla_monitor": {
            "seconds": int(config.get("SLA_SWEEP_INTERVAL_SECONDS", 900)),
            "description": "SLA overdue / at-risk sweep",
        },
    }
    return defaults.get(job_name, {"seconds": 3600, "description": "Hourly"})
