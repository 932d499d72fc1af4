"""
OrganizationModel: abstract base class for organization-scoped models.

All models that need tenant isolation should inherit from OrganizationModel
instead of db.Model directly. This adds:
  - organization_id FK column with index
  - query_for_organization(organization_id) classmethod
  - to_row() serializer used by the data explorer preview
"""

from datetime import datetime, timezone

from ispops.models import db


def utcnow():
    return datetime.now(timezone.utc)


def iso(value):
    """Serialize a date/datetime column value (None-safe)."""
    return value.isoformat() if value is not None else None


class OrganizationModel(db.Model):
    """Abstract base for organization-scoped tables."""
    __abstract__ = True

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_organization(cls, organization_id):
        """Return a query filtered by organization_id."""
        return cls.query.filter_by(organization_id=organization_id)

    def to_row(self) -> dict:
        """Column-by-column dict used by the data explorer preview."""
        row = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if hasattr(value, "isoformat"):
                value = value.isoformat()
            elif value is not None and not isinstance(value, (int, float, str, bool, dict, list)):
                value = str(value)
            row[column.key] = value
        return row
