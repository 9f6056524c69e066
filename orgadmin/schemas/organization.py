"""
Organization schemas.

Request/response models for the admin organization endpoints.
"""

from __future__ import annotations

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")


def _validate_slug(v: str) -> str:
    if not SLUG_PATTERN.match(v):
        raise ValueError(
            "Slug must be lowercase alphanumeric and hyphens only, "
            "and cannot start or end with a hyphen"
        )
    return v


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(BaseModel):
    """Request body for POST /admin/organizations."""

    name: str = Field(min_length=2, max_length=100)
    slug: str = Field(min_length=3, max_length=50)
    parent_organization_id: UUID | None = None

    @field_validator("slug")
    @classmethod
    def slug_must_be_valid(cls, v: str) -> str:
        return _validate_slug(v)


class OrganizationUpdateRequest(BaseModel):
    """
    Request body for PATCH /admin/organizations/{org_id}.

    Omitting parent_organization_id leaves the parent unchanged;
    sending null detaches the organization and makes it a root.
    """

    name: str | None = Field(default=None, min_length=2, max_length=100)
    slug: str | None = Field(default=None, min_length=3, max_length=50)
    parent_organization_id: UUID | None = None

    @field_validator("slug")
    @classmethod
    def slug_must_be_valid(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _validate_slug(v)

    @property
    def changes_parent(self) -> bool:
        return "parent_organization_id" in self.model_fields_set


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class OrganizationResponse(BaseModel):
    """Organization detail response."""

    id: UUID
    name: str
    slug: str
    parent_organization_id: UUID | None
    deleted_at: datetime | None
    delete_scheduled_for: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrganizationListResponse(BaseModel):
    """Response for GET /admin/organizations/{org_id}/children."""

    organizations: list[OrganizationResponse]
    total: int


class OrganizationHierarchyResponse(BaseModel):
    """Where an organization sits in the tree and what hangs below it."""

    org_id: UUID
    parent_organization_id: UUID | None
    depth: int
    subtree_depth: int
    descendant_ids: list[UUID]
    descendants_truncated: bool = Field(
        description="True when the descendant list hit the safety cap and is partial",
    )


class DeletionImpactResponse(BaseModel):
    """Preview of what a soft delete would affect."""

    org_id: UUID
    member_count: int
    active_member_count: int
    child_org_count: int
    descendant_org_count: int
    descendant_member_count: int
    descendants_truncated: bool


class OrganizationSummary(OrganizationResponse):
    """Organization row in the admin list, with its member count."""

    member_count: int


class CursorInfo(BaseModel):
    next: str | None
    has_more: bool


class OrganizationPageResponse(BaseModel):
    """Response for GET /admin/organizations (flat view)."""

    data: list[OrganizationSummary]
    cursor: CursorInfo


class OrganizationTreeNode(BaseModel):
    """One node of the tree view; clients link nodes via parent_organization_id."""

    id: UUID
    name: str
    slug: str
    parent_organization_id: UUID | None
    member_count: int


class OrganizationTreeResponse(BaseModel):
    """Response for GET /admin/organizations?view=tree."""

    tree_view_available: bool = Field(
        description="False when there are too many organizations to render as a tree",
    )
    data: list[OrganizationTreeNode]
