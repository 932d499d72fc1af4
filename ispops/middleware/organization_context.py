"""
Organization Context Middleware: resolves the calling tenant on API requests.

Every /api/v1/ request (except health) must carry X-Organization-Id:
  1. Missing or non-numeric header   -> 401
  2. Unknown or deactivated org      -> 403
  3. Otherwise g.organization / g.organization_id are set

Downstream services take organization_id explicitly; they never read it
from the request themselves.
"""

import logging

from flask import g, request

from ispops.models import db
from ispops.models.organization import Organization
from ispops.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ORGANIZATION_HEADER = "X-Organization-Id"

SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_organization_context(app):
    """Register organization context middleware as a before_request hook."""

    @app.before_request
    def _organization_context():
        g.organization = None
        g.organization_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None
        for prefix in SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        raw = (request.headers.get(ORGANIZATION_HEADER) or "").strip()
        if not raw.isdigit():
            return api_error(E.ORGANIZATION_REQUIRED,
                             f"{ORGANIZATION_HEADER} header is required",
                             kind="Unauthorized")

        organization = db.session.get(Organization, int(raw))
        if organization is None or not organization.is_active:
            logger.warning("Rejected request for organization %s (%s)", raw,
                           "missing" if organization is None else "inactive",
                           extra={"organization_id": int(raw), "path": request.path})
            return api_error(E.FORBIDDEN, "Organization not found or inactive",
                             kind="Forbidden")

        g.organization = organization
        g.organization_id = organization.id
        return None

    logger.info("Organization context middleware installed")
