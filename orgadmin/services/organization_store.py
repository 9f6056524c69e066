"""
Read interface the hierarchy core uses to look at the organization tree.

SqlOrganizationStore is the production implementation over an AsyncSession.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Hashable, NamedTuple, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgadmin.models.organization import Organization

OrgId = Hashable


class OrgParentRow(NamedTuple):
    id: OrgId
    parent_organization_id: OrgId | None


class OrganizationReader(Protocol):
    """Single-row parent lookups and child listings."""

    async def fetch_parent(self, org_id: OrgId) -> OrgParentRow | None: ...

    async def fetch_children(self, org_id: OrgId) -> list[OrgId]: ...


class OrganizationStore(OrganizationReader, Protocol):
    """A reader that can also scope a sequence of reads to one transaction."""

    def transaction(self) -> AbstractAsyncContextManager[OrganizationReader]: ...


class SqlOrganizationStore:
    """
    OrganizationStore backed by the organizations table.

    Soft-deleted rows are returned like any other row; deletion state is the caller's concern.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def fetch_parent(self, org_id: OrgId) -> OrgParentRow | None:
        result = await self.db.execute(
            select(Organization.id, Organization.parent_organization_id)
            .where(Organization.id == org_id)
            .limit(1)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return OrgParentRow(id=row.id, parent_organization_id=row.parent_organization_id)

    async def fetch_children(self, org_id: OrgId) -> list[OrgId]:
        result = await self.db.execute(
            select(Organization.id).where(Organization.parent_organization_id == org_id)
        )
        return list(result.scalars().all())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlOrganizationStore]:
        """
        Run the enclosed reads in one transaction scope.

        Uses a SAVEPOINT when the session already has a transaction in progress
        (the usual case inside a request), otherwise begins a new transaction.
        """
        if self.db.in_transaction():
            async with self.db.begin_nested():
                yield self
        else:
            async with self.db.begin():
                yield self
