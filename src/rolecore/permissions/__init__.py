"""Permission representation and inheritance resolution for rolecore.

Defines:
- PermissionTree: wildcard-aware trie of dot-separated permission patterns
- InheritanceResolver / resolve_permissions(): merge inherited role trees
- Grammar helpers: SEPARATOR, WILDCARD, is_concrete(), split_permission()
"""

from .constants import SEPARATOR, SINGLE_LEVEL, WILDCARD, is_concrete, split_permission
from .inheritance import InheritanceResolver, resolve_permissions
from .tree import PermissionTree

__all__ = [
    "InheritanceResolver",
    "PermissionTree",
    "SEPARATOR",
    "SINGLE_LEVEL",
    "WILDCARD",
    "is_concrete",
    "resolve_permissions",
    "split_permission",
]
