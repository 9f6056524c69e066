"""
Keyset (cursor) pagination helpers.

A cursor encodes the (created_at, id) of the last row of a page as
URL-safe base64 JSON: {"t": <ISO timestamp>, "i": <uuid>}.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status


def encode_cursor(created_at: datetime, row_id: UUID) -> str:
    raw = json.dumps({"t": created_at.isoformat(), "i": str(row_id)})
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    """
    Decode a cursor produced by encode_cursor.

    Raises:
        HTTPException: 400 INVALID_CURSOR for anything malformed.
    """
    try:
        parsed = json.loads(base64.urlsafe_b64decode(cursor.encode()))
        if not isinstance(parsed, dict):
            raise ValueError("cursor is not an object")
        return datetime.fromisoformat(parsed["t"]), UUID(parsed["i"])
    except (ValueError, KeyError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_CURSOR", "message": "Pagination cursor is invalid"},
        )
