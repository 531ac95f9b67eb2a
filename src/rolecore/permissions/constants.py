"""Permission string grammar for rolecore.

Provides:
- ``SEPARATOR`` — segment delimiter (``api.users.view``).
- ``WILDCARD`` — the ``*`` segment.
- ``is_concrete()`` / ``split_permission()`` — helpers shared by the tree and the engine.
"""

from __future__ import annotations

SEPARATOR = "."

# A non-final "*" continues matching one level down.
# A final "*" matches this level and everything below it.
WILDCARD = "*"

# Last segment of "posts.*.": exactly one level below, no deeper.
SINGLE_LEVEL = ""


def split_permission(permission: str) -> list[str]:
    """Split a permission string into its segments.

    ``"api.users.view"`` → ``["api", "users", "view"]``
    ``"posts.*."``       → ``["posts", "*", ""]``
    """
    return permission.split(SEPARATOR)


def is_concrete(permission: str) -> bool:
    """Check if a permission names a single capability (no wildcard forms).

    Only concrete permissions are valid inputs to a match. Non-string
    values are never concrete.
    """
    if not isinstance(permission, str) or not permission:
        return False
    segments = split_permission(permission)
    return all(seg and seg != WILDCARD for seg in segments)


__all__ = [
    "SEPARATOR",
    "SINGLE_LEVEL",
    "WILDCARD",
    "is_concrete",
    "split_permission",
]
