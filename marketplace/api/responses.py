"""Success envelope shared by all endpoints."""

from typing import Any, Dict, Optional

from marketplace.db import serialize


def envelope(data: Any = None, status: int = 200, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Wrap a payload as ``{"success": true, "status", "data", "meta"?}``."""
    body: Dict[str, Any] = {"success": True, "status": status, "data": serialize(data)}
    if meta is not None:
        body["meta"] = meta
    return body
