"""Standardised API error responses.

Usage
-----
    from osflow.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Order not found")
    return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    return api_error(E.VALIDATION_FAILED, "Internal approval is required", details={"from": "REVISAO"})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Malformed request – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Business rule – HTTP 422
    VALIDATION_FAILED = "ERR_VALIDATION_FAILED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    NO_TRANSITION = "ERR_NO_TRANSITION"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Server – HTTP 5xx
    PERSISTENCE = "ERR_PERSISTENCE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_FAILED: 422,
    E.NOT_FOUND: 404,
    E.NO_TRANSITION: 409,
    E.CONFLICT_STATE: 409,
    E.PERSISTENCE: 503,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
