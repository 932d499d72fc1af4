"""Standardised API error responses.

Usage
-----
    from ispops.utils.errors import api_error, E

    return api_error(E.TABLE_NOT_FOUND, "Table 'invoices' not found")
    return api_error(E.VALIDATION_REQUIRED, "sourceTable is required")
    return api_error_from(exc)
"""

from __future__ import annotations

from flask import jsonify

from ispops.core.exceptions import (
    FieldNotFoundError,
    InvalidFilterError,
    NotFoundError,
    QueryExecutionError,
    TableNotFoundError,
    UnsupportedOperatorError,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention: ERR_ prefix for every application error.
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNSUPPORTED_OPERATOR = "ERR_UNSUPPORTED_OPERATOR"

    # Auth / scope – HTTP 401 / 403
    ORGANIZATION_REQUIRED = "ERR_ORGANIZATION_REQUIRED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"
    TABLE_NOT_FOUND = "ERR_TABLE_NOT_FOUND"
    FIELD_NOT_FOUND = "ERR_FIELD_NOT_FOUND"

    # Server – HTTP 500
    QUERY_EXECUTION = "ERR_QUERY_EXECUTION"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNSUPPORTED_OPERATOR: 400,
    E.ORGANIZATION_REQUIRED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.TABLE_NOT_FOUND: 404,
    E.FIELD_NOT_FOUND: 404,
    E.QUERY_EXECUTION: 500,
    E.INTERNAL: 500,
}

# Most specific first
_EXCEPTION_CODES: tuple[tuple[type, str], ...] = (
    (TableNotFoundError, E.TABLE_NOT_FOUND),
    (FieldNotFoundError, E.FIELD_NOT_FOUND),
    (NotFoundError, E.NOT_FOUND),
    (UnsupportedOperatorError, E.UNSUPPORTED_OPERATOR),
    (InvalidFilterError, E.VALIDATION_INVALID),
    (ValidationError, E.VALIDATION_INVALID),
    (QueryExecutionError, E.QUERY_EXECUTION),
)


def api_error(
    code: str,
    message: str,
    *,
    kind: str | None = None,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    kind : str, optional
        Error classification placed in ``error`` (e.g. ``TableNotFound``).
        Defaults to ``code``.
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
        "error": kind or code,
        "message": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def api_error_from(exc: Exception):
    """Map a platform exception onto ``api_error``."""
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            details = getattr(exc, "details", None)
            return api_error(code, str(exc), kind=exc.kind, details=details)
    return api_error(E.INTERNAL, "Internal server error", kind="InternalError")
