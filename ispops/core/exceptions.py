"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from ispops.core.exceptions import TableNotFoundError, UnsupportedOperatorError

    raise TableNotFoundError("invoices")
    raise UnsupportedOperatorError("between")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND resources that exist but
    are not visible to the calling organization. A 403 would confirm the
    resource exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Table", "Field").
        resource_id: The key that was looked up.
        organization_id: Optional, the scope that was enforced. Debug logging only.
    """

    kind = "NotFound"

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id!r}"
        msg += " not found"
        if organization_id is not None:
            msg += f" (organization={organization_id})"
        super().__init__(msg)


class TableNotFoundError(NotFoundError):
    """Table name is not in the explorer registry (or not registered for the organization)."""

    kind = "TableNotFound"

    def __init__(self, table_name: str, organization_id: int | None = None) -> None:
        self.table_name = table_name
        super().__init__("Table", table_name, organization_id)


class FieldNotFoundError(NotFoundError):
    """Filter field does not resolve to a column of the target table."""

    kind = "FieldNotFound"

    def __init__(self, field: str, table_name: str) -> None:
        self.field = field
        self.table_name = table_name
        super().__init__(f"Field on table {table_name!r}", field)


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    kind = "ValidationError"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnsupportedOperatorError(ValidationError):
    """Filter operator is outside the fixed operator set."""

    kind = "UnsupportedOperator"

    def __init__(self, operator) -> None:
        self.operator = operator
        super().__init__(f"Unsupported operator: {operator!r}", details={"operator": operator})


class InvalidFilterError(ValidationError):
    """Filter clause or query configuration is malformed."""

    kind = "InvalidFilter"


class QueryExecutionError(Exception):
    """The database raised while executing an explorer query. Not retried."""

    kind = "QueryExecutionError"

    def __init__(self, message: str, source_table: str | None = None) -> None:
        self.source_table = source_table
        super().__init__(message)


class SchedulingError(Exception):
    """Computing or installing an organization's cron job failed."""

    kind = "SchedulingError"

    def __init__(self, organization_id: int, reason: str) -> None:
        self.organization_id = organization_id
        super().__init__(f"Could not schedule organization {organization_id}: {reason}")


class GenerationTaskError(Exception):
    """The work-item generation task failed for an organization."""

    kind = "GenerationTaskError"

    def __init__(self, organization_id: int, reason: str) -> None:
        self.organization_id = organization_id
        self.reason = reason
        super().__init__(f"Work item generation failed for organization {organization_id}: {reason}")
