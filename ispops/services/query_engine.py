"""
ISP Operations Platform
Dynamic query engine for the data explorer.

Executes bounded, tenant-isolated count (and preview) queries over registry
tables. One query per invocation; read-only; no cross-request state.

Pipeline:
    resolve table -> tenant predicate -> compile filters -> AND -> execute

The tenant predicate is always ANDed with caller filters. A caller filter on
organization_id can narrow the result but never widen it past the caller's
own organization.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func, literal, select
from sqlalchemy.exc import SQLAlchemyError

from ispops.core.exceptions import InvalidFilterError, QueryExecutionError
from ispops.models import db
from ispops.services.filter_compiler import compile_filters
from ispops.services.table_registry import table_registry

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000


@dataclass(frozen=True)
class QueryResult:
    count: int
    duration_ms: int
    filter_count: int
    source_table: str

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "duration": self.duration_ms,
            "sourceTable": self.source_table,
            "filterCount": self.filter_count,
        }


def _config_value(key: str, default):
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return default


def resolve_limit(raw, *, default: int | None = None, ceiling: int | None = None) -> int:
    """Validate queryConfig.limit; absent -> default, capped at ceiling."""
    if default is None:
        default = _config_value("DATA_EXPLORER_DEFAULT_LIMIT", DEFAULT_LIMIT)
    if raw is None:
        limit = default
    elif isinstance(raw, bool) or not isinstance(raw, int):
        raise InvalidFilterError("queryConfig.limit must be a positive integer",
                                 details={"limit": raw})
    else:
        limit = raw
    if limit < 1:
        raise InvalidFilterError("queryConfig.limit must be a positive integer",
                                 details={"limit": raw})
    if ceiling is None:
        ceiling = _config_value("DATA_EXPLORER_MAX_LIMIT", None)
    if ceiling:
        limit = min(limit, ceiling)
    return limit


def build_conditions(descriptor, organization_id: int, filters) -> list:
    """Tenant predicate first, then every compiled caller filter."""
    conditions = []
    if descriptor.is_tenant_scoped:
        conditions.append(descriptor.organization_column == organization_id)
    conditions.extend(compile_filters(descriptor, filters))
    return conditions


def _split_config(query_config) -> tuple[list | None, object]:
    if query_config is None:
        return None, None
    if not isinstance(query_config, dict):
        raise InvalidFilterError("queryConfig must be an object")
    return query_config.get("filters"), query_config.get("limit")


def run_count_query(source_table: str, organization_id: int, query_config: dict | None) -> QueryResult:
    """
    Count rows of `source_table` matching the query config for one organization.

    Args:
        source_table: Registry table name.
        organization_id: Caller's organization; always enforced.
        query_config: ``{"filters": [...], "limit": int}``. limit bounds the
            rows counted (default 1000).

    Returns:
        QueryResult(count, duration_ms, filter_count, source_table)

    Raises:
        TableNotFoundError, FieldNotFoundError: 404-class.
        UnsupportedOperatorError, InvalidFilterError: 400-class.
        QueryExecutionError: database failure (500-class).
    """
    descriptor = table_registry.resolve(source_table)
    filters, raw_limit = _split_config(query_config)
    limit = resolve_limit(raw_limit)
    conditions = build_conditions(descriptor, organization_id, filters)
    filter_count = len(filters or [])

    bounded = (
        select(literal(1).label("hit"))
        .select_from(descriptor.model.__table__)
        .where(*conditions)
        .limit(limit)
        .subquery()
    )
    stmt = select(func.count()).select_from(bounded)

    start = time.perf_counter()
    try:
        count = db.session.execute(stmt).scalar_one()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception(
            "Explorer count failed on %s for organization %s",
            source_table, organization_id,
            extra={"organization_id": organization_id, "source_table": source_table},
        )
        raise QueryExecutionError("Query execution failed", source_table=source_table) from exc
    duration_ms = int((time.perf_counter() - start) * 1000)

    logger.info(
        "Explorer count %s org=%s filters=%d -> %d (%dms)",
        source_table, organization_id, filter_count, count, duration_ms,
        extra={
            "organization_id": organization_id,
            "source_table": source_table,
            "duration_ms": duration_ms,
        },
    )
    return QueryResult(
        count=count,
        duration_ms=duration_ms,
        filter_count=filter_count,
        source_table=source_table,
    )


def run_preview_query(source_table: str, organization_id: int, query_config: dict | None) -> list[dict]:
    """Return up to DATA_EXPLORER_PREVIEW_LIMIT matching rows (ordered by id)."""
    descriptor = table_registry.resolve(source_table)
    filters, raw_limit = _split_config(query_config)
    preview_cap = _config_value("DATA_EXPLORER_PREVIEW_LIMIT", 100)
    limit = resolve_limit(raw_limit, default=preview_cap, ceiling=preview_cap)
    conditions = build_conditions(descriptor, organization_id, filters)

    model = descriptor.model
    stmt = select(model).where(*conditions).order_by(model.id).limit(limit)
    try:
        rows = db.session.execute(stmt).scalars().all()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception(
            "Explorer preview failed on %s for organization %s",
            source_table, organization_id,
            extra={"organization_id": organization_id, "source_table": source_table},
        )
        raise QueryExecutionError("Query execution failed", source_table=source_table) from exc
    return [row.to_row() for row in rows]
