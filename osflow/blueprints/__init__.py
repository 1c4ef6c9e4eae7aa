"""
Content OS Workflow Platform
Blueprint registry and shared request helpers.
"""

import logging

from flask import current_app, request

from osflow.core.exceptions import (
    NoTransitionError,
    NotFoundError,
    PersistenceError,
    StageConflictError,
    ValidationError,
)
from osflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def request_org_id() -> str | None:
    """Organization scope from the ``X-Org-Id`` header (None = unscoped)."""
    return (request.headers.get("X-Org-Id") or "").strip() or None


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def get_notifier():
    from osflow.services.notifier import Notifier

    return current_app.extensions.get("notifier") or Notifier.from_config(current_app.config)


def register_error_handlers(app) -> None:
    """Map the service exception hierarchy to ``api_error`` responses."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        logger.info("Not found: %s", error)
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_FAILED, str(error), details=error.details)

    @app.errorhandler(StageConflictError)
    def _handle_conflict(error: StageConflictError):
        return api_error(E.CONFLICT_STATE, str(error))

    @app.errorhandler(NoTransitionError)
    def _handle_no_transition(error: NoTransitionError):
        return api_error(E.NO_TRANSITION, str(error))

    @app.errorhandler(PersistenceError)
    def _handle_persistence(error: PersistenceError):
        logger.error("Persistence failure on %s: %s", request.path, error)
        return api_error(E.PERSISTENCE, "Storage temporarily unavailable, retry later")
