"""
ISP Operations Platform
Table registry for the data explorer.

Whitelist of tables that may be targeted by ad-hoc explorer queries.
Each entry maps the logical table name to a SchemaDescriptor built from the
SQLAlchemy model at import time; nothing mutates the registry afterwards.

Usage:
    from ispops.services.table_registry import table_registry

    descriptor = table_registry.resolve("work_items")
    descriptor.column("status")            # -> Column
    descriptor.organization_column          # -> Column | None
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from sqlalchemy import JSON

from ispops.core.exceptions import TableNotFoundError
from ispops.models.operations import (
    AddressRecord,
    FieldTask,
    FinancialTransaction,
    ProfitCenter,
    RagStatusRecord,
    TariffRecord,
)
from ispops.models.strategy import KeyResult, KeyResultTask, Objective, WorkItem

ORGANIZATION_COLUMN = "organization_id"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def to_snake_case(name: str) -> str:
    """organizationId -> organization_id (already-snake names pass through)."""
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


@dataclass(frozen=True)
class SchemaDescriptor:
    """Queryable view of one registered model."""

    name: str
    model: type
    label: str
    description: str
    columns: Mapping = field(repr=False)
    organization_column_name: str | None = None

    @property
    def organization_column(self):
        if self.organization_column_name is None:
            return None
        return self.columns[self.organization_column_name]

    @property
    def is_tenant_scoped(self) -> bool:
        return self.organization_column_name is not None

    def column(self, name: str):
        """Return the column attribute for `name`, or None.

        Accepts the attribute name as declared and its camelCase spelling.
        """
        col = self.columns.get(name)
        if col is None:
            col = self.columns.get(to_snake_case(name))
        return col

    def is_json_column(self, column) -> bool:
        return isinstance(column.type, JSON)


def _describe(name: str, model: type, label: str, description: str) -> SchemaDescriptor:
    columns = {col.key: getattr(model, col.key) for col in model.__table__.columns}
    org_col = ORGANIZATION_COLUMN if ORGANIZATION_COLUMN in columns else None
    return SchemaDescriptor(
        name=name,
        model=model,
        label=label,
        description=description,
        columns=MappingProxyType(columns),
        organization_column_name=org_col,
    )


# (table name, model, label, description)
_SOURCES = (
    ("address_records", AddressRecord, "Address Records",
     "Customer addresses and network locations"),
    ("work_items", WorkItem, "Work Items",
     "Tasks and work items from strategy execution"),
    ("field_tasks", FieldTask, "Field Tasks",
     "Field engineering tasks and assignments"),
    ("rag_status_records", RagStatusRecord, "RAG Status Records",
     "Red/Amber/Green status tracking"),
    ("tariff_records", TariffRecord, "Tariff Records",
     "Service tariff and pricing data"),
    ("financial_transactions", FinancialTransaction, "Financial Transactions",
     "Xero financial transactions with profit center categorization"),
    ("objectives", Objective, "Objectives",
     "Strategic objectives and company goals"),
    ("key_results", KeyResult, "Key Results",
     "Measurable key results tracking objective progress"),
    ("key_result_tasks", KeyResultTask, "Key Result Tasks",
     "Actionable tasks supporting key results"),
    ("profit_centers", ProfitCenter, "Profit Centers",
     "Business segments for financial tracking"),
)


class TableRegistry:
    """Read-only name -> SchemaDescriptor lookup."""

    def __init__(self, sources) -> None:
        entries = {}
        for name, model, label, description in sources:
            entries[name] = _describe(name, model, label, description)
        self._entries = MappingProxyType(entries)

    def resolve(self, table_name: str) -> SchemaDescriptor:
        """Return the descriptor for `table_name` or raise TableNotFoundError."""
        descriptor = self._entries.get(table_name)
        if descriptor is None:
            raise TableNotFoundError(table_name)
        return descriptor

    def names(self) -> list[str]:
        return sorted(self._entries)

    def descriptors(self) -> list[SchemaDescriptor]:
        return [self._entries[name] for name in self.names()]

    def __contains__(self, table_name) -> bool:
        return table_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


table_registry = TableRegistry(_SOURCES)
