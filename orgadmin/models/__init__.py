"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
Import order matters: base models before dependent models.
"""

from orgadmin.models.base import Base, SoftDeleteMixin, TimestampMixin, UUIDMixin
from orgadmin.models.member import OrgMember, OrgRole
from orgadmin.models.organization import Organization
from orgadmin.models.user import User

__all__ = [
    "Base",
    "SoftDeleteMixin",
    "TimestampMixin",
    "UUIDMixin",
    "Organization",
    "User",
    "OrgMember",
    "OrgRole",
]
