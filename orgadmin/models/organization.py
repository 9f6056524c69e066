"""
Organization ORM model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgadmin.models.base import Base, SoftDeleteMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from orgadmin.models.member import OrgMember


class Organization(Base, UUIDMixin, TimestampMixin, SoftDeleteMixin):
    """
    Represents a tenant organization.

    Organizations form a forest through parent_organization_id (null = root).
    The pointer is only written after orgadmin.services.hierarchy approves it.
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    parent_organization_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    parent: Mapped[Organization | None] = relationship(
        "Organization", remote_side="Organization.id", back_populates="children"
    )
    children: Mapped[list[Organization]] = relationship(
        "Organization", back_populates="parent"
    )
    members: Mapped[list[OrgMember]] = relationship(
        "OrgMember", back_populates="organization", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Organization id={self.id} slug={self.slug!r} "
            f"parent_organization_id={self.parent_organization_id}>"
        )
