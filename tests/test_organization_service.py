"""
OrganizationService tests.

Hierarchy reads go through an in-memory store; the AsyncSession is mocked.
"""

import logging
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy.dialects import postgresql

from conftest import InMemoryOrganizationStore
from orgadmin.core.exceptions import OrgCycleDetectedError, OrgDepthExceededError
from orgadmin.core.pagination import decode_cursor, encode_cursor
from orgadmin.models.organization import Organization
from orgadmin.models.user import User
from orgadmin.schemas.organization import (
    OrganizationCreateRequest,
    OrganizationUpdateRequest,
)
from orgadmin.services.hierarchy import MAX_DESCENDANT_IDS
from orgadmin.services.organization_service import TREE_VIEW_MAX_ORGS, OrganizationService

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def make_org(name: str, parent: Organization | None = None, **kwargs) -> Organization:
    return Organization(
        id=kwargs.pop("id", uuid4()),
        name=name,
        slug=kwargs.pop("slug", name.lower()),
        parent_organization_id=parent.id if parent else None,
        deleted_at=kwargs.pop("deleted_at", None),
        delete_scheduled_for=None,
        created_at=NOW,
        updated_at=NOW,
    )


def make_admin() -> User:
    return User(id=uuid4(), email="admin@example.com", display_name="Admin", is_platform_admin=True)


def scalar_result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    return result


async def _refresh(obj) -> None:
    if obj.id is None:
        obj.id = uuid4()
    obj.created_at = obj.created_at or NOW
    obj.updated_at = NOW


def build_service(*orgs: Organization) -> tuple[OrganizationService, MagicMock, InMemoryOrganizationStore]:
    by_id = {org.id: org for org in orgs}
    db = MagicMock()
    db.get = AsyncMock(side_effect=lambda model, key: by_id.get(key))
    db.execute = AsyncMock(return_value=scalar_result(None))
    db.flush = AsyncMock()
    db.refresh = AsyncMock(side_effect=_refresh)
    store = InMemoryOrganizationStore(
        {org.id: org.parent_organization_id for org in orgs}
    )
    return OrganizationService(db, store=store), db, store


@pytest.fixture
def tree():
    """root <- child <- grandchild, plus a separate root 'other'."""
    root = make_org("Root")
    child = make_org("Child", root)
    grandchild = make_org("Grandchild", child)
    other = make_org("Other")
    return root, child, grandchild, other


# ---------------------------------------------------------------------------
# 1. Create
# ---------------------------------------------------------------------------

class TestCreateOrganization:

    @pytest.mark.asyncio
    async def test_creates_root_organization(self):
        service, db, store = build_service()

        response = await service.create_organization(
            OrganizationCreateRequest(name="Acme", slug="acme"), make_admin()
        )

        assert response.slug == "acme"
        assert response.parent_organization_id is None
        db.add.assert_called_once()
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_creates_child_under_root(self, tree):
        root, *_ = tree
        service, db, _ = build_service(*tree)

        response = await service.create_organization(
            OrganizationCreateRequest(name="Team", slug="team", parent_organization_id=root.id),
            make_admin(),
        )

        assert response.parent_organization_id == root.id

    @pytest.mark.asyncio
    async def test_rejects_child_under_grandchild(self, tree):
        _, _, grandchild, _ = tree
        service, db, _ = build_service(*tree)

        with pytest.raises(OrgDepthExceededError):
            await service.create_organization(
                OrganizationCreateRequest(
                    name="Too Deep", slug="too-deep", parent_organization_id=grandchild.id
                ),
                make_admin(),
            )
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_parent_is_404(self):
        service, _, _ = build_service()

        with pytest.raises(HTTPException) as exc_info:
            await service.create_organization(
                OrganizationCreateRequest(name="Orphan", slug="orphan", parent_organization_id=uuid4()),
                make_admin(),
            )
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail["code"] == "PARENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_deleted_parent_is_rejected(self):
        parent = make_org("Gone", deleted_at=NOW)
        service, _, _ = build_service(parent)

        with pytest.raises(HTTPException) as exc_info:
            await service.create_organization(
                OrganizationCreateRequest(name="Late", slug="late", parent_organization_id=parent.id),
                make_admin(),
            )
        assert exc_info.value.detail["code"] == "PARENT_DELETED"

    @pytest.mark.asyncio
    async def test_duplicate_slug_is_409(self):
        service, db, _ = build_service()
        db.execute = AsyncMock(return_value=scalar_result(uuid4()))

        with pytest.raises(HTTPException) as exc_info:
            await service.create_organization(
                OrganizationCreateRequest(name="Acme", slug="acme"), make_admin()
            )
        assert exc_info.value.status_code == 409
        assert exc_info.value.detail["code"] == "SLUG_TAKEN"


# ---------------------------------------------------------------------------
# 2. Update / reparent
# ---------------------------------------------------------------------------

class TestUpdateOrganization:

    @pytest.mark.asyncio
    async def test_reparent_under_own_descendant_is_cycle(self, tree):
        root, _, grandchild, _ = tree
        service, db, _ = build_service(*tree)

        with pytest.raises(OrgCycleDetectedError):
            await service.update_organization(
                root.id,
                OrganizationUpdateRequest(parent_organization_id=grandchild.id),
                make_admin(),
            )
        assert root.parent_organization_id is None
        db.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reparent_to_self_is_cycle(self, tree):
        _, child, _, _ = tree
        service, _, _ = build_service(*tree)

        with pytest.raises(OrgCycleDetectedError):
            await service.update_organization(
                child.id, OrganizationUpdateRequest(parent_organization_id=child.id), make_admin()
            )

    @pytest.mark.asyncio
    async def test_reparent_subtree_too_deep(self, tree):
        _, child, _, other = tree
        # child carries one level below it; under a depth-1 parent that is 1 + 1 + 1
        other_child = make_org("Other Child", other)
        service, _, _ = build_service(*tree, other_child)

        with pytest.raises(OrgDepthExceededError):
            await service.update_organization(
                child.id,
                OrganizationUpdateRequest(parent_organization_id=other_child.id),
                make_admin(),
            )

    @pytest.mark.asyncio
    async def test_valid_reparent_is_written_and_logged(self, tree, caplog):
        _, child, grandchild, other = tree
        service, db, _ = build_service(*tree)
        caplog.set_level(logging.INFO, logger="orgadmin.services.organization_service")

        response = await service.update_organization(
            child.id, OrganizationUpdateRequest(parent_organization_id=other.id), make_admin()
        )

        assert response.parent_organization_id == other.id
        assert child.parent_organization_id == other.id
        db.flush.assert_awaited()
        assert "org.parent_changed" in caplog.text

    @pytest.mark.asyncio
    async def test_null_parent_detaches_without_validation(self, tree):
        _, child, _, _ = tree
        service, _, store = build_service(*tree)

        response = await service.update_organization(
            child.id, OrganizationUpdateRequest(parent_organization_id=None), make_admin()
        )

        assert response.parent_organization_id is None
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_omitted_parent_leaves_it_unchanged(self, tree):
        root, child, _, _ = tree
        service, _, store = build_service(*tree)

        response = await service.update_organization(
            child.id, OrganizationUpdateRequest(name="Renamed"), make_admin()
        )

        assert response.name == "Renamed"
        assert response.parent_organization_id == root.id
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_unknown_org_is_404(self):
        service, _, _ = build_service()

        with pytest.raises(HTTPException) as exc_info:
            await service.update_organization(uuid4(), OrganizationUpdateRequest(name="Nope"), make_admin())
        assert exc_info.value.detail["code"] == "ORG_NOT_FOUND"


# ---------------------------------------------------------------------------
# 3. Hierarchy report
# ---------------------------------------------------------------------------

class TestHierarchyReport:

    @pytest.mark.asyncio
    async def test_reports_depth_subtree_and_descendants(self, tree):
        root, child, grandchild, _ = tree
        service, _, _ = build_service(*tree)

        report = await service.get_hierarchy(root.id)

        assert report.depth == 0
        assert report.subtree_depth == 2
        assert report.descendant_ids == [child.id, grandchild.id]
        assert report.descendants_truncated is False

    @pytest.mark.asyncio
    async def test_reports_grandchild_depth(self, tree):
        _, child, grandchild, _ = tree
        service, _, _ = build_service(*tree)

        report = await service.get_hierarchy(grandchild.id)

        assert report.depth == 2
        assert report.subtree_depth == 0
        assert report.parent_organization_id == child.id


# ---------------------------------------------------------------------------
# 4. Deletion
# ---------------------------------------------------------------------------

class TestDeletion:

    @pytest.mark.asyncio
    async def test_deletion_impact_counts(self, tree):
        root, child, grandchild, _ = tree
        service, db, _ = build_service(*tree)
        # member_count, active_member_count, child_org_count, descendant_member_count
        db.execute = AsyncMock(
            side_effect=[scalar_result(4), scalar_result(3), scalar_result(1), scalar_result(7)]
        )

        impact = await service.get_deletion_impact(root.id)

        assert impact.member_count == 4
        assert impact.active_member_count == 3
        assert impact.child_org_count == 1
        assert impact.descendant_org_count == 2
        assert impact.descendant_member_count == 7
        assert impact.descendants_truncated is False

    @pytest.mark.asyncio
    async def test_deletion_impact_of_leaf_skips_descendant_member_query(self, tree):
        _, _, grandchild, _ = tree
        service, db, _ = build_service(*tree)
        db.execute = AsyncMock(side_effect=[scalar_result(2), scalar_result(2), scalar_result(0)])

        impact = await service.get_deletion_impact(grandchild.id)

        assert impact.descendant_org_count == 0
        assert impact.descendant_member_count == 0
        assert db.execute.await_count == 3

    @pytest.mark.asyncio
    async def test_delete_schedules_purge(self, tree):
        _, child, _, _ = tree
        service, _, _ = build_service(*tree)

        response = await service.delete_organization(child.id, make_admin())

        assert response.deleted_at is not None
        assert response.delete_scheduled_for - response.deleted_at == timedelta(days=30)

    @pytest.mark.asyncio
    async def test_delete_twice_is_409(self, tree):
        _, child, _, _ = tree
        child.deleted_at = NOW
        service, _, _ = build_service(*tree)

        with pytest.raises(HTTPException) as exc_info:
            await service.delete_organization(child.id, make_admin())
        assert exc_info.value.detail["code"] == "ORG_ALREADY_DELETED"

    @pytest.mark.asyncio
    async def test_restore_clears_markers(self, tree):
        _, child, _, _ = tree
        child.deleted_at = NOW
        child.delete_scheduled_for = NOW + timedelta(days=30)
        service, _, _ = build_service(*tree)

        response = await service.restore_organization(child.id, make_admin())

        assert response.deleted_at is None
        assert response.delete_scheduled_for is None

    @pytest.mark.asyncio
    async def test_restore_live_org_is_409(self, tree):
        root, *_ = tree
        service, _, _ = build_service(*tree)

        with pytest.raises(HTTPException) as exc_info:
            await service.restore_organization(root.id, make_admin())
        assert exc_info.value.detail["code"] == "ORG_NOT_DELETED"


# ---------------------------------------------------------------------------
# 5. Listing
# ---------------------------------------------------------------------------

def rows_result(rows) -> MagicMock:
    result = MagicMock()
    result.all.return_value = rows
    return result


def compiled(stmt):
    return stmt.compile(dialect=postgresql.dialect())


class TestListOrganizations:

    @pytest.mark.asyncio
    async def test_returns_rows_with_member_counts(self, tree):
        root, child, _, _ = tree
        service, db, _ = build_service(*tree)
        db.execute = AsyncMock(return_value=rows_result([(child, 2), (root, 5)]))

        page = await service.list_organizations()

        assert [(o.id, o.member_count) for o in page.data] == [(child.id, 2), (root.id, 5)]
        assert page.cursor.has_more is False
        assert page.cursor.next is None
        sql = str(compiled(db.execute.await_args.args[0]))
        assert "LEFT OUTER JOIN org_members" in sql
        assert "ORDER BY organizations.created_at DESC, organizations.id DESC" in sql

    @pytest.mark.asyncio
    async def test_extra_row_means_another_page(self, tree):
        root, child, grandchild, _ = tree
        service, db, _ = build_service(*tree)
        db.execute = AsyncMock(
            return_value=rows_result([(grandchild, 0), (child, 1), (root, 3)])
        )

        page = await service.list_organizations(limit=2)

        assert [o.id for o in page.data] == [grandchild.id, child.id]
        assert page.cursor.has_more is True
        assert decode_cursor(page.cursor.next) == (child.created_at, child.id)
        assert 3 in compiled(db.execute.await_args.args[0]).params.values()

    @pytest.mark.asyncio
    async def test_cursor_filters_past_last_row(self, tree):
        _, child, _, _ = tree
        service, db, _ = build_service(*tree)
        db.execute = AsyncMock(return_value=rows_result([]))

        await service.list_organizations(cursor=encode_cursor(child.created_at, child.id))

        sql = str(compiled(db.execute.await_args.args[0]))
        assert "organizations.created_at < " in sql
        assert "organizations.id < " in sql

    @pytest.mark.asyncio
    async def test_invalid_cursor_is_400(self):
        service, _, _ = build_service()

        with pytest.raises(HTTPException) as exc_info:
            await service.list_organizations(cursor="not-a-cursor")
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["code"] == "INVALID_CURSOR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_filter, expected",
        [
            ("active", "organizations.deleted_at IS NULL"),
            ("archived", "organizations.deleted_at IS NOT NULL"),
        ],
    )
    async def test_status_filter(self, status_filter, expected):
        service, db, _ = build_service()
        db.execute = AsyncMock(return_value=rows_result([]))

        await service.list_organizations(status_filter=status_filter)

        assert expected in str(compiled(db.execute.await_args.args[0]))

    @pytest.mark.asyncio
    async def test_search_escapes_like_wildcards(self):
        service, db, _ = build_service()
        db.execute = AsyncMock(return_value=rows_result([]))

        await service.list_organizations(search="50%_off")

        stmt = compiled(db.execute.await_args.args[0])
        assert "ILIKE" in str(stmt)
        assert "%50\\%\\_off%" in stmt.params.values()


class TestTreeView:

    @pytest.mark.asyncio
    async def test_returns_live_orgs_with_parents(self, tree):
        root, child, _, _ = tree
        service, db, _ = build_service(*tree)
        db.execute = AsyncMock(
            side_effect=[
                scalar_result(2),
                rows_result(
                    [
                        SimpleNamespace(
                            id=root.id, name=root.name, slug=root.slug,
                            parent_organization_id=None, member_count=3,
                        ),
                        SimpleNamespace(
                            id=child.id, name=child.name, slug=child.slug,
                            parent_organization_id=root.id, member_count=0,
                        ),
                    ]
                ),
            ]
        )

        response = await service.list_organizations_for_tree()

        assert response.tree_view_available is True
        assert [(n.id, n.parent_organization_id) for n in response.data] == [
            (root.id, None),
            (child.id, root.id),
        ]
        assert response.data[0].member_count == 3

    @pytest.mark.asyncio
    async def test_exactly_max_orgs_still_renders(self):
        service, db, _ = build_service()
        db.execute = AsyncMock(side_effect=[scalar_result(TREE_VIEW_MAX_ORGS), rows_result([])])

        response = await service.list_organizations_for_tree()

        assert response.tree_view_available is True
        assert db.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_too_many_orgs_disables_tree_without_loading_rows(self):
        service, db, _ = build_service()
        db.execute = AsyncMock(return_value=scalar_result(TREE_VIEW_MAX_ORGS + 1))

        response = await service.list_organizations_for_tree()

        assert response.tree_view_available is False
        assert response.data == []
        assert db.execute.await_count == 1


# ---------------------------------------------------------------------------
# 6. Descendant truncation flag
# ---------------------------------------------------------------------------

class TestDescendantTruncation:

    @staticmethod
    def wide_service(child_count: int) -> tuple[OrganizationService, Organization]:
        root = make_org("Root")
        parents = {root.id: None}
        for _ in range(child_count):
            parents[uuid4()] = root.id
        db = MagicMock()
        db.get = AsyncMock(return_value=root)
        return OrganizationService(db, store=InMemoryOrganizationStore(parents)), root

    @pytest.mark.asyncio
    async def test_exactly_max_descendants_is_not_truncated(self):
        service, root = self.wide_service(MAX_DESCENDANT_IDS)

        report = await service.get_hierarchy(root.id)

        assert len(report.descendant_ids) == MAX_DESCENDANT_IDS
        assert report.descendants_truncated is False

    @pytest.mark.asyncio
    async def test_more_than_max_descendants_is_truncated(self):
        service, root = self.wide_service(MAX_DESCENDANT_IDS + 1)

        report = await service.get_hierarchy(root.id)

        assert len(report.descendant_ids) == MAX_DESCENDANT_IDS
        assert report.descendants_truncated is True
