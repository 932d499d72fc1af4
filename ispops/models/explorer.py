"""
ISP Operations Platform
Data explorer metadata models.

Models:
    - DataTable: A registry table made visible to one organization
    - DataField: Column descriptor for a DataTable
"""

from ispops.models import db
from ispops.models.base import OrganizationModel, iso, utcnow


class DataTable(OrganizationModel):
    """Per-organization registration of a queryable table."""

    __tablename__ = "data_tables"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "table_name", name="uq_data_tables_org_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    table_name = db.Column(db.String(255), nullable=False)
    label = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    doc_url = db.Column(db.String(500), nullable=True)
    row_count = db.Column(db.Integer, nullable=True)
    last_analyzed = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    fields = db.relationship(
        "DataField", backref="table", cascade="all, delete-orphan",
        order_by="DataField.field_name", lazy="select",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "table_name": self.table_name,
            "label": self.label,
            "description": self.description,
            "doc_url": self.doc_url,
            "row_count": self.row_count,
            "last_analyzed": iso(self.last_analyzed),
        }

    def __repr__(self):
        return f"<DataTable org={self.organization_id} {self.table_name}>"


class DataField(db.Model):
    """Column descriptor, seeded from the model definition on first access."""

    __tablename__ = "data_fields"

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.Integer, db.ForeignKey("data_tables.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    field_name = db.Column(db.String(255), nullable=False)
    field_type = db.Column(db.String(100), nullable=False,
                           comment="number, text, boolean, date, timestamp, jsonb")
    nullable = db.Column(db.Boolean, default=True)
    default_value = db.Column(db.String(500), nullable=True)
    is_pk = db.Column(db.Boolean, default=False)
    is_fk = db.Column(db.Boolean, default=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "table_id": self.table_id,
            "field_name": self.field_name,
            "field_type": self.field_type,
            "nullable": self.nullable,
            "default_value": self.default_value,
            "is_pk": self.is_pk,
            "is_fk": self.is_fk,
            "description": self.description,
        }

    def __repr__(self):
        return f"<DataField {self.field_name}:{self.field_type}>"
