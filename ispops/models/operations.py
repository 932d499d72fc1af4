"""
ISP Operations Platform
Operational record models exposed to the data explorer.

Models:
    - AddressRecord: Synced customer addresses (raw Airtable payload in JSON)
    - FieldTask: Field engineering tasks mirrored from Splynx
    - RagStatusRecord: Red/Amber/Green status tracking
    - TariffRecord: Service tariff and pricing data
    - ProfitCenter: Business segment for financial tracking
    - FinancialTransaction: Xero transactions categorized by profit center
"""

from ispops.models import db
from ispops.models.base import OrganizationModel, utcnow


class AddressRecord(OrganizationModel):
    """Customer address and network location."""

    __tablename__ = "address_records"

    id = db.Column(db.Integer, primary_key=True)
    airtable_record_id = db.Column(db.String(100), nullable=True)
    airtable_connection_id = db.Column(db.Integer, nullable=True)
    airtable_fields = db.Column(db.JSON, default=dict,
                                comment="Raw record; query with airtable_fields.<Key>")
    local_status = db.Column(db.String(50), nullable=True)
    local_notes = db.Column(db.Text, nullable=True)
    work_item_count = db.Column(db.Integer, default=0)
    last_work_item_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class FieldTask(OrganizationModel):
    """Field engineering task."""

    __tablename__ = "field_tasks"

    id = db.Column(db.Integer, primary_key=True)
    splynx_task_id = db.Column(db.Integer, nullable=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    splynx_task_type = db.Column(db.String(100), nullable=True)
    app_task_type = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(50), default="new")
    priority = db.Column(db.String(20), default="medium")
    assigned_to = db.Column(db.Integer, nullable=True)
    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    custom_fields = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)


class RagStatusRecord(OrganizationModel):
    """Red/Amber/Green status snapshot for a tracked entity."""

    __tablename__ = "rag_status_records"

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(10), nullable=False, comment="red, amber, green")
    reason = db.Column(db.Text, nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), default=utcnow)


class TariffRecord(OrganizationModel):
    """Service tariff."""

    __tablename__ = "tariff_records"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    service_type = db.Column(db.String(50), nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=True)
    currency = db.Column(db.String(3), default="GBP")
    is_active = db.Column(db.Boolean, default=True)
    attributes = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)


class ProfitCenter(OrganizationModel):
    """Business segment."""

    __tablename__ = "profit_centers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)


class FinancialTransaction(OrganizationModel):
    """Accounting transaction mirrored from Xero."""

    __tablename__ = "financial_transactions"

    id = db.Column(db.Integer, primary_key=True)
    xero_transaction_id = db.Column(db.String(100), nullable=True)
    profit_center_id = db.Column(db.Integer,
                                 db.ForeignKey("profit_centers.id", ondelete="SET NULL"),
                                 nullable=True, index=True)
    transaction_type = db.Column(db.String(30), nullable=True)
    contact_name = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    transaction_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(30), nullable=True)
    xero_data = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
