"""
Domain exceptions for organization hierarchy rules.

Raised by the hierarchy core and mapped to HTTP 400 in main.py.
"""

from __future__ import annotations


class OrgHierarchyError(Exception):
    """Base class for rejected hierarchy changes."""

    code: str = "ORG_HIERARCHY_INVALID"
    default_message: str = "Organization hierarchy change is not allowed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class OrgCycleDetectedError(OrgHierarchyError):
    """The proposed parent is the organization itself or one of its descendants."""

    code = "ORG_CYCLE_DETECTED"
    default_message = "Moving this organization would create a cycle in the hierarchy"


class OrgDepthExceededError(OrgHierarchyError):
    """The move or creation would exceed the maximum hierarchy depth."""

    code = "ORG_DEPTH_EXCEEDED"
    default_message = "Organization hierarchy cannot be deeper than 3 levels"
