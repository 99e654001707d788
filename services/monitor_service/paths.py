"""
Path normalization — collapses path parameters so route keys stay bounded.

/users/3f2b...-uuid/orders/42  →  /users/:uuid/orders
"""

from __future__ import annotations

import re
from typing import Callable

PathNormalizer = Callable[[str], str]

_UUID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)
_OBJECT_ID_RE = re.compile(r"[0-9a-f]{24}", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"/\d+(?=/|$)")

# Leading "" from the root slash counts as a segment, so 4 keeps 3 real ones.
_MAX_SEGMENTS = 4


def default_normalize_path(path: str) -> str:
    """Replace UUID, 24-hex and numeric segments, then keep the first 4 segments."""
    path = _UUID_RE.sub(":uuid", path)
    path = _OBJECT_ID_RE.sub(":id", path)
    path = _NUMERIC_RE.sub("/:id", path)
    return "/".join(path.split("/")[:_MAX_SEGMENTS])
