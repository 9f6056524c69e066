"""
Organization business logic for platform admins.

Handles org listing (flat and tree view), creation, updates and
reparenting, hierarchy reports, deletion impact and soft delete/restore.
Parent pointers are only written after orgadmin.services.hierarchy approves them.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgadmin.core.config import settings
from orgadmin.core.pagination import decode_cursor, encode_cursor
from orgadmin.models.member import OrgMember
from orgadmin.models.organization import Organization
from orgadmin.models.user import User
from orgadmin.schemas.organization import (
    CursorInfo,
    DeletionImpactResponse,
    OrganizationCreateRequest,
    OrganizationHierarchyResponse,
    OrganizationListResponse,
    OrganizationPageResponse,
    OrganizationResponse,
    OrganizationSummary,
    OrganizationTreeNode,
    OrganizationTreeResponse,
    OrganizationUpdateRequest,
)
from orgadmin.services.hierarchy import (
    get_depth,
    get_subtree_depth,
    scan_descendant_org_ids,
    validate_hierarchy,
    validate_new_child,
)
from orgadmin.services.organization_store import OrganizationStore, SqlOrganizationStore

logger = logging.getLogger(__name__)

TREE_VIEW_MAX_ORGS = 1000


class OrganizationService:
    """Handles all admin organization operations."""

    def __init__(self, db: AsyncSession, store: OrganizationStore | None = None) -> None:
        self.db = db
        self.store = store if store is not None else SqlOrganizationStore(db)

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------

    async def _get_org_or_404(self, org_id: UUID) -> Organization:
        org = await self.db.get(Organization, org_id)
        if org is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "ORG_NOT_FOUND", "message": "Organization not found"},
            )
        return org

    async def _get_parent_or_error(self, parent_id: UUID) -> Organization:
        parent = await self.db.get(Organization, parent_id)
        if parent is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "PARENT_NOT_FOUND", "message": "Parent organization not found"},
            )
        if parent.is_deleted:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "PARENT_DELETED",
                    "message": "Cannot attach an organization to a deleted parent",
                },
            )
        return parent

    async def _ensure_slug_available(self, slug: str) -> None:
        existing = await self.db.execute(
            select(Organization.id).where(Organization.slug == slug)
        )
        if existing.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "SLUG_TAKEN", "message": "Organization slug is already taken"},
            )

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create_organization(
        self, data: OrganizationCreateRequest, actor: User
    ) -> OrganizationResponse:
        """
        Create a new organization.

        - Validates slug uniqueness
        - If a parent is given, it must exist, not be deleted, and leave room for one more level
        """
        await self._ensure_slug_available(data.slug)

        if data.parent_organization_id is not None:
            await self._get_parent_or_error(data.parent_organization_id)
            await validate_new_child(self.store, data.parent_organization_id)

        org = Organization(
            name=data.name,
            slug=data.slug,
            parent_organization_id=data.parent_organization_id,
        )
        self.db.add(org)
        await self.db.flush()
        await self.db.refresh(org)

        logger.info(
            "org.created org_id=%s parent_organization_id=%s actor_id=%s",
            org.id,
            org.parent_organization_id,
            actor.id,
        )
        return OrganizationResponse.model_validate(org)

    # -----------------------------------------------------------------------
    # Get Organization
    # -----------------------------------------------------------------------

    async def get_organization(self, org_id: UUID) -> OrganizationResponse:
        """Get organization by id, including soft-deleted ones."""
        org = await self._get_org_or_404(org_id)
        return OrganizationResponse.model_validate(org)

    async def list_children(self, org_id: UUID) -> OrganizationListResponse:
        """Direct children of an organization, oldest first."""
        await self._get_org_or_404(org_id)
        result = await self.db.execute(
            select(Organization)
            .where(Organization.parent_organization_id == org_id)
            .order_by(Organization.created_at)
        )
        children = list(result.scalars().all())
        return OrganizationListResponse(
            organizations=[OrganizationResponse.model_validate(c) for c in children],
            total=len(children),
        )

    # -----------------------------------------------------------------------
    # List Organizations
    # -----------------------------------------------------------------------

    async def list_organizations(
        self,
        status_filter: str | None = None,
        search: str | None = None,
        cursor: str | None = None,
        limit: int = 20,
    ) -> OrganizationPageResponse:
        """
        List organizations newest first, with member counts.

        - status_filter: "active" (not deleted) or "archived" (soft-deleted)
        - search: case-insensitive substring of name or slug
        - cursor: next cursor from the previous page
        """
        stmt = (
            select(Organization, func.count(OrgMember.id).label("member_count"))
            .outerjoin(OrgMember, OrgMember.org_id == Organization.id)
            .group_by(Organization.id)
            .order_by(Organization.created_at.desc(), Organization.id.desc())
            .limit(limit + 1)
        )

        if status_filter == "active":
            stmt = stmt.where(Organization.deleted_at.is_(None))
        elif status_filter == "archived":
            stmt = stmt.where(Organization.deleted_at.is_not(None))

        if search:
            escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{escaped}%"
            stmt = stmt.where(
                or_(
                    Organization.name.ilike(pattern, escape="\\"),
                    Organization.slug.ilike(pattern, escape="\\"),
                )
            )

        if cursor:
            cursor_created_at, cursor_id = decode_cursor(cursor)
            stmt = stmt.where(
                or_(
                    Organization.created_at < cursor_created_at,
                    and_(
                        Organization.created_at == cursor_created_at,
                        Organization.id < cursor_id,
                    ),
                )
            )

        result = await self.db.execute(stmt)
        rows = list(result.all())
        has_more = len(rows) > limit
        rows = rows[:limit]

        items = [
            OrganizationSummary(
                **OrganizationResponse.model_validate(org).model_dump(), member_count=count
            )
            for org, count in rows
        ]
        next_cursor = None
        if has_more and items:
            next_cursor = encode_cursor(items[-1].created_at, items[-1].id)

        return OrganizationPageResponse(
            data=items,
            cursor=CursorInfo(next=next_cursor, has_more=has_more),
        )

    async def list_organizations_for_tree(self) -> OrganizationTreeResponse:
        """
        All live organizations with member counts, for rendering the tree.

        Above TREE_VIEW_MAX_ORGS organizations the tree view is reported as
        unavailable and no rows are loaded.
        """
        live_count = await self._count(
            select(func.count(Organization.id)).where(Organization.deleted_at.is_(None))
        )
        if live_count > TREE_VIEW_MAX_ORGS:
            logger.info("Tree view unavailable: %d live organizations", live_count)
            return OrganizationTreeResponse(tree_view_available=False, data=[])

        result = await self.db.execute(
            select(
                Organization.id,
                Organization.name,
                Organization.slug,
                Organization.parent_organization_id,
                func.count(OrgMember.id).label("member_count"),
            )
            .outerjoin(OrgMember, OrgMember.org_id == Organization.id)
            .where(Organization.deleted_at.is_(None))
            .group_by(Organization.id)
        )
        return OrganizationTreeResponse(
            tree_view_available=True,
            data=[
                OrganizationTreeNode(
                    id=row.id,
                    name=row.name,
                    slug=row.slug,
                    parent_organization_id=row.parent_organization_id,
                    member_count=row.member_count,
                )
                for row in result.all()
            ],
        )

    # -----------------------------------------------------------------------
    # Update Organization
    # -----------------------------------------------------------------------

    async def update_organization(
        self, org_id: UUID, data: OrganizationUpdateRequest, actor: User
    ) -> OrganizationResponse:
        """
        Update name, slug and/or parent.

        A non-null parent goes through validate_hierarchy before anything is
        written; a null parent makes the organization a root.
        """
        org = await self._get_org_or_404(org_id)
        previous_parent_id = org.parent_organization_id

        if data.changes_parent and data.parent_organization_id is not None:
            await self._get_parent_or_error(data.parent_organization_id)
            await validate_hierarchy(self.store, org.id, data.parent_organization_id)

        if data.slug is not None and data.slug != org.slug:
            await self._ensure_slug_available(data.slug)
            org.slug = data.slug

        if data.name is not None:
            org.name = data.name

        if data.changes_parent:
            org.parent_organization_id = data.parent_organization_id

        await self.db.flush()
        await self.db.refresh(org)

        if data.changes_parent and org.parent_organization_id != previous_parent_id:
            logger.info(
                "org.parent_changed org_id=%s from=%s to=%s actor_id=%s",
                org.id,
                previous_parent_id,
                org.parent_organization_id,
                actor.id,
            )
        else:
            logger.info("org.updated org_id=%s actor_id=%s", org.id, actor.id)

        return OrganizationResponse.model_validate(org)

    # -----------------------------------------------------------------------
    # Hierarchy report
    # -----------------------------------------------------------------------

    async def get_hierarchy(self, org_id: UUID) -> OrganizationHierarchyResponse:
        """Depth, subtree depth and (capped) descendants of an organization."""
        org = await self._get_org_or_404(org_id)

        depth = await get_depth(self.store, org.id)
        subtree_depth = await get_subtree_depth(self.store, org.id)
        descendants = await scan_descendant_org_ids(self.store, org.id)

        return OrganizationHierarchyResponse(
            org_id=org.id,
            parent_organization_id=org.parent_organization_id,
            depth=depth,
            subtree_depth=subtree_depth,
            descendant_ids=descendants.ids,
            descendants_truncated=descendants.truncated,
        )

    # -----------------------------------------------------------------------
    # Deletion
    # -----------------------------------------------------------------------

    async def _count(self, stmt) -> int:
        result = await self.db.execute(stmt)
        return result.scalar_one() or 0

    async def get_deletion_impact(self, org_id: UUID) -> DeletionImpactResponse:
        """
        Preview the impact of deleting an organization.

        Descendant counts come from the capped enumerator and may undercount
        very large subtrees (see descendants_truncated).
        """
        org = await self._get_org_or_404(org_id)

        member_count = await self._count(
            select(func.count(OrgMember.id)).where(OrgMember.org_id == org.id)
        )
        active_member_count = await self._count(
            select(func.count(OrgMember.id))
            .join(User, OrgMember.user_id == User.id)
            .where(
                OrgMember.org_id == org.id,
                User.deleted_at.is_(None),
                User.is_banned.is_(False),
            )
        )
        child_org_count = await self._count(
            select(func.count(Organization.id)).where(
                Organization.parent_organization_id == org.id
            )
        )

        descendants = await scan_descendant_org_ids(self.store, org.id)
        descendant_member_count = 0
        if descendants.ids:
            descendant_member_count = await self._count(
                select(func.count(OrgMember.id)).where(OrgMember.org_id.in_(descendants.ids))
            )

        return DeletionImpactResponse(
            org_id=org.id,
            member_count=member_count,
            active_member_count=active_member_count,
            child_org_count=child_org_count,
            descendant_org_count=len(descendants.ids),
            descendant_member_count=descendant_member_count,
            descendants_truncated=descendants.truncated,
        )

    async def delete_organization(self, org_id: UUID, actor: User) -> OrganizationResponse:
        """Soft-delete an organization and schedule its purge."""
        org = await self._get_org_or_404(org_id)

        if org.is_deleted:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "ORG_ALREADY_DELETED", "message": "Organization is already deleted"},
            )

        now = datetime.now(UTC)
        org.deleted_at = now
        org.delete_scheduled_for = now + timedelta(days=settings.ORG_DELETION_GRACE_DAYS)
        await self.db.flush()
        await self.db.refresh(org)

        logger.info(
            "org.deleted org_id=%s delete_scheduled_for=%s actor_id=%s",
            org.id,
            org.delete_scheduled_for,
            actor.id,
        )
        return OrganizationResponse.model_validate(org)

    async def restore_organization(self, org_id: UUID, actor: User) -> OrganizationResponse:
        """Clear the soft-delete markers of an organization."""
        org = await self._get_org_or_404(org_id)

        if not org.is_deleted:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "ORG_NOT_DELETED", "message": "Organization is not deleted"},
            )

        org.deleted_at = None
        org.delete_scheduled_for = None
        await self.db.flush()
        await self.db.refresh(org)

        logger.info("org.restored org_id=%s actor_id=%s", org.id, actor.id)
        return OrganizationResponse.model_validate(org)
