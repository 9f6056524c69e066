"""
Organization hierarchy integrity.

Keeps the organization forest acyclic and at most MAX_HIERARCHY_DEPTH levels
deep as organizations are created and reparented. Every function here is
read-only: callers write the new parent pointer only after validation passes.

Stored data is not trusted to be acyclic, so every traversal is bounded:
- ancestor walks stop after MAX_PARENT_WALK_ITERATIONS reads
- subtree depth stops expanding past MAX_PARENT_WALK_ITERATIONS + 1 levels
- descendant enumeration stops at MAX_DESCENDANT_IDS ids

Capped answers are returned as-is (and logged) rather than raised, so a
validation over already-corrupted data can approve on partial information.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import NamedTuple

from orgadmin.core.exceptions import OrgCycleDetectedError, OrgDepthExceededError
from orgadmin.services.organization_store import (
    OrganizationReader,
    OrganizationStore,
    OrgId,
)

logger = logging.getLogger(__name__)

MAX_PARENT_WALK_ITERATIONS = 10
MAX_HIERARCHY_DEPTH = 3
MAX_DESCENDANT_IDS = 1000


# ---------------------------------------------------------------------------
# Ancestor walk
# ---------------------------------------------------------------------------

async def _walk_up(
    reader: OrganizationReader,
    start_id: OrgId,
    target_org_id: OrgId | None = None,
) -> int:
    depth = 0
    current_id: OrgId | None = start_id

    for _ in range(MAX_PARENT_WALK_ITERATIONS):
        row = await reader.fetch_parent(current_id)
        if row is None:
            return depth

        current_id = row.parent_organization_id
        if current_id is None:
            return depth

        depth += 1
        if target_org_id is not None and current_id == target_org_id:
            raise OrgCycleDetectedError()
    else:
        logger.warning(
            "Parent walk from org_id=%s hit the %d-iteration cap at depth=%d",
            start_id,
            MAX_PARENT_WALK_ITERATIONS,
            depth,
        )

    return depth


async def get_depth(reader: OrganizationReader, org_id: OrgId) -> int:
    """
    Number of parent hops from org_id up to its root.

    A root, or an id that does not exist, has depth 0. Never raises; a chain
    longer than MAX_PARENT_WALK_ITERATIONS (or a stored cycle) yields the
    depth counted when the cap was reached.
    """
    return await _walk_up(reader, org_id)


async def walk_parent_chain(
    reader: OrganizationReader,
    target_org_id: OrgId,
    start_id: OrgId,
) -> int:
    """
    Walk up from start_id and return its depth.

    Raises OrgCycleDetectedError as soon as target_org_id shows up as a parent
    anywhere along the chain.
    """
    return await _walk_up(reader, start_id, target_org_id)


# ---------------------------------------------------------------------------
# Subtree depth
# ---------------------------------------------------------------------------

async def get_subtree_depth(reader: OrganizationReader, org_id: OrgId) -> int:
    """
    Length of the longest parent->child chain below org_id (0 for a leaf).

    Walks one level at a time. Once the depth reaches the cap level the
    remaining siblings are skipped, so the result never exceeds
    MAX_PARENT_WALK_ITERATIONS + 1.
    """
    depth = 0
    frontier: list[OrgId] = [org_id]

    while frontier:
        at_cap = depth >= MAX_PARENT_WALK_ITERATIONS
        next_frontier: list[OrgId] = []
        for node_id in frontier:
            next_frontier.extend(await reader.fetch_children(node_id))
            # at the cap level, one child is enough to settle the answer
            if at_cap and next_frontier:
                break

        if not next_frontier:
            break

        depth += 1
        if at_cap:
            logger.warning(
                "Subtree depth of org_id=%s capped at %d",
                org_id,
                depth,
            )
            break
        frontier = next_frontier

    return depth


# ---------------------------------------------------------------------------
# Descendants
# ---------------------------------------------------------------------------

class DescendantScan(NamedTuple):
    """Descendant ids plus whether more exist beyond MAX_DESCENDANT_IDS."""

    ids: list[OrgId]
    truncated: bool


async def _collect_descendants(
    reader: OrganizationReader, org_id: OrgId, limit: int
) -> list[OrgId]:
    descendant_ids: list[OrgId] = []
    seen: set[OrgId] = {org_id}
    queue: deque[OrgId] = deque([org_id])

    while queue:
        for child_id in await reader.fetch_children(queue.popleft()):
            if child_id in seen:
                continue
            seen.add(child_id)
            descendant_ids.append(child_id)
            if len(descendant_ids) >= limit:
                return descendant_ids
            queue.append(child_id)

    return descendant_ids


async def get_descendant_org_ids(reader: OrganizationReader, org_id: OrgId) -> list[OrgId]:
    """
    All ids below org_id, breadth-first, excluding org_id itself.

    Stops at MAX_DESCENDANT_IDS even mid-level. A list of exactly that length
    may be partial; use scan_descendant_org_ids to know for sure.
    """
    return await _collect_descendants(reader, org_id, MAX_DESCENDANT_IDS)


async def scan_descendant_org_ids(reader: OrganizationReader, org_id: OrgId) -> DescendantScan:
    """
    Like get_descendant_org_ids, but reports whether the cap cut the list short.

    Looks for one id past the cap, so a subtree of exactly
    MAX_DESCENDANT_IDS descendants comes back complete.
    """
    ids = await _collect_descendants(reader, org_id, MAX_DESCENDANT_IDS + 1)
    if len(ids) <= MAX_DESCENDANT_IDS:
        return DescendantScan(ids, False)

    logger.warning(
        "Descendant enumeration for org_id=%s truncated at %d ids",
        org_id,
        MAX_DESCENDANT_IDS,
    )
    return DescendantScan(ids[:MAX_DESCENDANT_IDS], True)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

async def validate_hierarchy(
    store: OrganizationStore,
    org_id: OrgId,
    new_parent_id: OrgId,
) -> None:
    """
    Approve moving org_id under new_parent_id, or raise.

    Order of checks:
    1. self-reference (no store access)
    2. cycle: org_id among new_parent_id's ancestors, read in one transaction
    3. depth: depth(new_parent_id) + 1 + subtree_depth(org_id) must stay
       below MAX_HIERARCHY_DEPTH

    The subtree read happens after the ancestor transaction closes. Callers
    that need the whole check atomic with their write should run both inside
    one outer transaction.

    Raises:
        OrgCycleDetectedError: the move would make org_id its own ancestor.
        OrgDepthExceededError: the resulting tree would be too deep.
    """
    if org_id == new_parent_id:
        raise OrgCycleDetectedError("An organization cannot be its own parent")

    async with store.transaction() as tx:
        parent_depth = await walk_parent_chain(tx, org_id, new_parent_id)

    subtree_depth = await get_subtree_depth(store, org_id)

    if parent_depth + 1 + subtree_depth >= MAX_HIERARCHY_DEPTH:
        logger.info(
            "Rejected move of org_id=%s under %s: parent_depth=%d subtree_depth=%d",
            org_id,
            new_parent_id,
            parent_depth,
            subtree_depth,
        )
        raise OrgDepthExceededError()


async def validate_new_child(reader: OrganizationReader, parent_id: OrgId) -> None:
    """
    Approve creating a new organization under parent_id, or raise.

    A new organization has no children, so only the parent's depth matters.

    Raises:
        OrgDepthExceededError: parent_id is already at the deepest level.
    """
    if await get_depth(reader, parent_id) + 1 >= MAX_HIERARCHY_DEPTH:
        raise OrgDepthExceededError()
