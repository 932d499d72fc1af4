"""
ISP Operations Platform
Explorer metadata service.

Maintains per-organization DataTable / DataField rows describing the registry
tables. Both levels are seeded lazily: tables on the first listing for an
organization, fields on the first field lookup for a table.

Field descriptors are introspected from the model columns so they never
drift from the schema the query engine actually filters on.
"""

from __future__ import annotations

import logging

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String
from sqlalchemy.exc import IntegrityError

from ispops.core.exceptions import TableNotFoundError
from ispops.models import db
from ispops.models.explorer import DataField, DataTable
from ispops.services.table_registry import table_registry

logger = logging.getLogger(__name__)

_FIELD_TYPES = (
    (JSON, "jsonb"),
    (Boolean, "boolean"),
    (DateTime, "timestamp"),
    (Date, "date"),
    (Integer, "number"),
    (Numeric, "number"),
    (String, "text"),
)


def field_type_for(column) -> str:
    for sa_type, label in _FIELD_TYPES:
        if isinstance(column.type, sa_type):
            return label
    return "text"


def _seed_tables(organization_id: int) -> list[DataTable]:
    existing = {
        t.table_name: t
        for t in DataTable.query_for_organization(organization_id).all()
    }
    created = 0
    for descriptor in table_registry.descriptors():
        if descriptor.name in existing:
            continue
        table = DataTable(
            organization_id=organization_id,
            table_name=descriptor.name,
            label=descriptor.label,
            description=descriptor.description,
        )
        db.session.add(table)
        existing[descriptor.name] = table
        created += 1
    if created:
        db.session.commit()
        logger.info("Seeded %d data table(s) for organization %s", created, organization_id,
                    extra={"organization_id": organization_id})
    return sorted(existing.values(), key=lambda t: t.table_name)


def list_tables(organization_id: int) -> list[DataTable]:
    """Return the organization's registered tables, seeding missing rows.

    A concurrent first listing for the same organization can win the insert;
    the loser rolls back and seeds again against the rows that now exist.
    """
    try:
        return _seed_tables(organization_id)
    except IntegrityError:
        db.session.rollback()
        logger.info("Data tables for organization %s seeded concurrently, reloading",
                    organization_id, extra={"organization_id": organization_id})
        return _seed_tables(organization_id)


def get_table(organization_id: int, table_name: str) -> DataTable:
    """Return one registered table row.

    Raises:
        TableNotFoundError: not registered for the organization, or not a
            registry table at all. The two cases are indistinguishable.
    """
    table = (
        DataTable.query_for_organization(organization_id)
        .filter_by(table_name=table_name)
        .first()
    )
    if table is None:
        raise TableNotFoundError(table_name, organization_id)
    return table


def _describe_fields(table: DataTable) -> list[DataField]:
    descriptor = table_registry.resolve(table.table_name)
    fields = []
    for column in descriptor.model.__table__.columns:
        default = None
        if column.default is not None and column.default.is_scalar:
            default = str(column.default.arg)
        fields.append(DataField(
            table_id=table.id,
            field_name=column.key,
            field_type=field_type_for(column),
            nullable=bool(column.nullable),
            default_value=default,
            is_pk=bool(column.primary_key),
            is_fk=bool(column.foreign_keys),
            description=column.comment,
        ))
    return fields


def get_fields(organization_id: int, table_name: str) -> list[DataField]:
    """Return field descriptors for a table, seeding them on first access."""
    table = get_table(organization_id, table_name)
    fields = (
        DataField.query.filter_by(table_id=table.id)
        .order_by(DataField.field_name)
        .all()
    )
    if fields:
        return fields

    if table_name not in table_registry:
        # Registered row without a model (legacy metadata): nothing to introspect
        return []

    logger.info("No fields for %s (organization %s), seeding from model",
                table_name, organization_id, extra={"organization_id": organization_id})
    fields = _describe_fields(table)
    db.session.add_all(fields)
    db.session.commit()
    return sorted(fields, key=lambda f: f.field_name)
