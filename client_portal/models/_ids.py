from __future__ import annotations

from uuid import uuid4


def new_id() -> str:
    """Opaque document id, as the store would issue one."""

    return uuid4().hex
