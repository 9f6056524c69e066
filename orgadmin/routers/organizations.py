"""
Admin organization endpoints.

List (flat or tree), create, update/reparent, hierarchy report,
deletion impact, soft delete/restore.
All endpoints require a platform administrator.
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from orgadmin.core.database import get_db
from orgadmin.core.dependencies import get_platform_admin
from orgadmin.models.user import User
from orgadmin.schemas.organization import (
    DeletionImpactResponse,
    OrganizationCreateRequest,
    OrganizationHierarchyResponse,
    OrganizationListResponse,
    OrganizationPageResponse,
    OrganizationResponse,
    OrganizationTreeResponse,
    OrganizationUpdateRequest,
)
from orgadmin.services.organization_service import OrganizationService

router = APIRouter()


def get_org_service(db: AsyncSession = Depends(get_db)) -> OrganizationService:
    """Dependency that constructs OrganizationService."""
    return OrganizationService(db=db)


# ---------------------------------------------------------------------------
# List Organizations
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=OrganizationPageResponse | OrganizationTreeResponse,
    summary="List organizations (flat or tree view)",
)
async def list_organizations(
    view: Literal["flat", "tree"] = Query(default="flat"),
    status_filter: Literal["active", "archived"] | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=100),
    cursor: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    _: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationPageResponse | OrganizationTreeResponse:
    """
    List organizations.

    - view=flat: newest first, cursor paginated, filterable by status and search
    - view=tree: every live organization, or tree_view_available=false when there are too many
    """
    if view == "tree":
        return await service.list_organizations_for_tree()
    return await service.list_organizations(
        status_filter=status_filter,
        search=search,
        cursor=cursor,
        limit=limit,
    )


# ---------------------------------------------------------------------------
# Create Organization
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    admin: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """
    Create a new organization, optionally under a parent.

    - Slug must be globally unique
    - The parent must leave room for one more level (max 3 levels)
    """
    return await service.create_organization(data, admin)


# ---------------------------------------------------------------------------
# Get Organization
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Get organization by id",
)
async def get_organization(
    org_id: UUID,
    _: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    return await service.get_organization(org_id)


# ---------------------------------------------------------------------------
# Update / Reparent Organization
# ---------------------------------------------------------------------------

@router.patch(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Update organization name, slug or parent",
)
async def update_organization(
    org_id: UUID,
    data: OrganizationUpdateRequest,
    admin: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """
    Update an organization.

    - A new parent is rejected with ORG_CYCLE_DETECTED if it lies below this organization
    - A new parent is rejected with ORG_DEPTH_EXCEEDED if the tree would exceed 3 levels
    - parent_organization_id: null makes the organization a root
    """
    return await service.update_organization(org_id, data, admin)


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/hierarchy",
    response_model=OrganizationHierarchyResponse,
    summary="Depth, subtree depth and descendants of an organization",
)
async def get_hierarchy(
    org_id: UUID,
    _: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationHierarchyResponse:
    return await service.get_hierarchy(org_id)


@router.get(
    "/{org_id}/children",
    response_model=OrganizationListResponse,
    summary="List direct child organizations",
)
async def list_children(
    org_id: UUID,
    _: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationListResponse:
    return await service.list_children(org_id)


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/deletion-impact",
    response_model=DeletionImpactResponse,
    summary="Preview what deleting an organization affects",
)
async def get_deletion_impact(
    org_id: UUID,
    _: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> DeletionImpactResponse:
    return await service.get_deletion_impact(org_id)


@router.delete(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Soft-delete an organization",
)
async def delete_organization(
    org_id: UUID,
    admin: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """Mark the organization deleted and schedule its purge after the grace period."""
    return await service.delete_organization(org_id, admin)


@router.post(
    "/{org_id}/restore",
    response_model=OrganizationResponse,
    summary="Restore a soft-deleted organization",
)
async def restore_organization(
    org_id: UUID,
    admin: User = Depends(get_platform_admin),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    return await service.restore_organization(org_id, admin)
