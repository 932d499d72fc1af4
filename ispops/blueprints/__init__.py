"""
ISP Operations Platform
Blueprint helpers.
"""

from flask import g, request


def current_organization_id() -> int:
    """Organization resolved by the organization context middleware."""
    return g.organization_id


def json_body() -> dict | None:
    """Request JSON object, or None when the body is missing or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None
