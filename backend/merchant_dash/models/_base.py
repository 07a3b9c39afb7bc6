from __future__ import annotations

import uuid


def new_id() -> str:
    """Opaque, server-assigned identity."""
    return uuid.uuid4().hex
