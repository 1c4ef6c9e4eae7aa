"""
Content OS Workflow Platform
Organization & user directory models.

Models:
    - Organization: tenant boundary; every order and user belongs to one
    - User: production team member with a pipeline role and an org-level role
"""

import enum

from osflow.models import db
from osflow.models.workflow import Role, _utcnow, _uuid


class OrgRole(str, enum.Enum):
    MEMBER = "MEMBER"
    ORG_ADMIN = "ORG_ADMIN"
    SUPERADMIN = "SUPERADMIN"


ADMIN_ORG_ROLES = (OrgRole.ORG_ADMIN, OrgRole.SUPERADMIN)


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(80), unique=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    users = db.relationship("User", backref="organization", lazy="dynamic")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "slug": self.slug}

    def __repr__(self):
        return f"<Organization {self.slug}>"


class User(db.Model):
    """
    Directory entry.

    ``role`` is the pipeline role used to pick a stage's responsible user;
    it is nullable for pure administrators.  ``org_role`` drives escalation:
    ORG_ADMIN and SUPERADMIN users receive SLA escalations.
    """

    __tablename__ = "users"
    __table_args__ = (
        db.Index("idx_users_org_role", "org_id", "role"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(
        db.String(36),
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(40), nullable=True, comment="E.164, used for WhatsApp delivery")
    role = db.Column(db.Enum(Role, native_enum=False, length=20), nullable=True)
    org_role = db.Column(
        db.Enum(OrgRole, native_enum=False, length=20),
        nullable=False,
        default=OrgRole.MEMBER,
    )
    can_approve = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @property
    def is_admin(self) -> bool:
        return self.org_role in ADMIN_ORG_ROLES

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value if self.role else None,
            "org_role": self.org_role.value,
            "can_approve": self.can_approve,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.email} [{self.role.value if self.role else '-'}]>"
