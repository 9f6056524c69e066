"""
Pytest configuration for orgadmin tests.

Provides an in-memory organization store that records every read, so tests
can assert both answers and access patterns.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-at-least-32-chars")

from contextlib import asynccontextmanager
from typing import Hashable

import pytest

from orgadmin.services.organization_store import OrgParentRow


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class InMemoryOrganizationStore:
    """
    OrganizationStore over a {org_id: parent_id} mapping.

    calls records (operation, org_id, inside_transaction) for every read.
    """

    def __init__(self, parents: dict[Hashable, Hashable | None] | None = None) -> None:
        self.parents = dict(parents or {})
        self.calls: list[tuple[str, Hashable, bool]] = []
        self.transactions_opened = 0
        self._in_transaction = False

    async def fetch_parent(self, org_id):
        self.calls.append(("fetch_parent", org_id, self._in_transaction))
        if org_id not in self.parents:
            return None
        return OrgParentRow(id=org_id, parent_organization_id=self.parents[org_id])

    async def fetch_children(self, org_id):
        self.calls.append(("fetch_children", org_id, self._in_transaction))
        return [child for child, parent in self.parents.items() if parent == org_id]

    @asynccontextmanager
    async def transaction(self):
        self.transactions_opened += 1
        self._in_transaction = True
        try:
            yield self
        finally:
            self._in_transaction = False

    def reads(self, operation: str) -> list[Hashable]:
        return [org_id for op, org_id, _ in self.calls if op == operation]


def chain(length: int, prefix: str = "org") -> dict[str, str | None]:
    """Parent map for prefix-0 <- prefix-1 <- ... <- prefix-{length}."""
    parents: dict[str, str | None] = {f"{prefix}-0": None}
    for i in range(1, length + 1):
        parents[f"{prefix}-{i}"] = f"{prefix}-{i - 1}"
    return parents


@pytest.fixture
def make_store():
    return InMemoryOrganizationStore
