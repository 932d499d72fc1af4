"""
Data Explorer blueprint.

Endpoints:
    GET  /api/v1/data-explorer/tables               registered tables (auto-seeded)
    GET  /api/v1/data-explorer/fields/<table_name>  field descriptors (auto-seeded)
    POST /api/v1/data-explorer/query                filtered count
    POST /api/v1/data-explorer/preview              filtered sample rows

Query body:
    {"sourceTable": "address_records",
     "queryConfig": {"filters": [{"field": "status", "operator": "equals",
                                  "value": "active"}],
                     "limit": 1000}}

Results are always restricted to the caller's organization
(X-Organization-Id, see organization_context middleware).
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from ispops.blueprints import current_organization_id, json_body
from ispops.core.exceptions import NotFoundError, QueryExecutionError, ValidationError
from ispops.services import explorer_metadata
from ispops.services.query_engine import run_count_query, run_preview_query
from ispops.utils.errors import E, api_error, api_error_from

logger = logging.getLogger(__name__)

data_explorer_bp = Blueprint("data_explorer", __name__, url_prefix="/api/v1/data-explorer")


# ── Error handlers ────────────────────────────────────────────────────────────


@data_explorer_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error_from(error)


@data_explorer_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error_from(error)


@data_explorer_bp.errorhandler(QueryExecutionError)
def _handle_query_failure(error: QueryExecutionError):
    return api_error_from(error)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _query_request() -> tuple[str | None, dict | None, tuple | None]:
    """Extract (sourceTable, queryConfig) or an error response."""
    data = json_body()
    if data is None:
        return None, None, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object",
                                     kind="InvalidRequest")
    source_table = data.get("sourceTable")
    if not isinstance(source_table, str) or not source_table:
        return None, None, api_error(E.VALIDATION_REQUIRED, "sourceTable is required",
                                     kind="InvalidRequest")
    return source_table, data.get("queryConfig"), None


# ═════════════════════════════════════════════════════════════════════════
# Metadata
# ═════════════════════════════════════════════════════════════════════════


@data_explorer_bp.route("/tables", methods=["GET"])
def list_tables():
    """List explorer tables registered for the organization."""
    tables = explorer_metadata.list_tables(current_organization_id())
    return jsonify([t.to_dict() for t in tables]), 200


@data_explorer_bp.route("/fields/<string:table_name>", methods=["GET"])
def list_fields(table_name):
    """Field descriptors for one table; 404 when not registered."""
    fields = explorer_metadata.get_fields(current_organization_id(), table_name)
    return jsonify([f.to_dict() for f in fields]), 200


# ═════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════


@data_explorer_bp.route("/query", methods=["POST"])
def query():
    """Count rows matching the filters (bounded by queryConfig.limit)."""
    source_table, query_config, err = _query_request()
    if err:
        return err
    result = run_count_query(source_table, current_organization_id(), query_config)
    return jsonify(result.to_dict()), 200


@data_explorer_bp.route("/preview", methods=["POST"])
def preview():
    """Return a small sample of matching rows."""
    source_table, query_config, err = _query_request()
    if err:
        return err
    rows = run_preview_query(source_table, current_organization_id(), query_config)
    return jsonify({"rows": rows, "rowCount": len(rows), "sourceTable": source_table}), 200
