"""
ISP Operations Platform
Organization, user and activity-log models.

Models:
    - Organization: Tenant account; every scoped row points here
    - User: Organization member (role "admin" authors automated activity)
    - ActivityLog: Per-organization audit trail of user and agent actions
"""

from ispops.models import db
from ispops.models.base import OrganizationModel, iso, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_TYPES = {
    "creation", "status_change", "assignment", "comment",
    "file_upload", "generation", "agent_action",
}


class Organization(db.Model):
    """Customer account. All data and schedules are partitioned by its id."""

    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.name}>"


class User(OrganizationModel):
    """Organization member."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(30), default="team_member", nullable=False,
                     comment="admin, manager, team_member, customer")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<User {self.id}: {self.email} [{self.role}]>"


class ActivityLog(OrganizationModel):
    """
    Activity log entry.

    user_id is nullable: scheduled/automated runs without an attributable
    admin are recorded as system actions.
    """

    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
                        nullable=True, index=True)
    action_type = db.Column(db.String(30), nullable=False)
    entity_type = db.Column(db.String(50), nullable=False,
                            comment="work_item, cron_job, strategy, ...")
    entity_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=False)
    details = db.Column("metadata", db.JSON, nullable=True,
                        comment="Additional context data")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "action_type": self.action_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "metadata": self.details,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<ActivityLog {self.id}: {self.action_type} {self.entity_type}>"
