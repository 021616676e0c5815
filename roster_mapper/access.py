from __future__ import annotations

import hmac


def is_access_code_valid(configured: str | None, provided: str | None) -> bool:
    """An empty configured code leaves the import page open."""
    required = configured or ""
    if not required:
        return True
    if not provided:
        return False
    return hmac.compare_digest(required.encode("utf-8"), provided.encode("utf-8"))
