"""Role inheritance resolution.

Provides:
- ``InheritanceResolver`` — memoized, cycle-checked resolution over one set of roles.
- ``resolve_permissions()`` — resolve a single role's merged permission tree.

A role's resolved tree is the merge of each inherited role's resolved tree,
in declaration order, with the role's own declarations overlaid last so
they take precedence. Inherited trees are copied into the result rather
than shared.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Mapping

from ..exceptions import ConfigurationError
from .tree import PermissionTree

if TYPE_CHECKING:
    from ..role import Role

logger = logging.getLogger(__name__)


class InheritanceResolver:
    """Resolve permission trees for every role in ``roles``.

    Each role is resolved at most once per resolver, so ancestors shared by
    many roles are not recomputed. Unknown inherit ids are skipped with a
    warning; cycles raise :class:`ConfigurationError`.
    """

    def __init__(self, roles: Mapping[str, Role]) -> None:
        self._roles = roles
        self._resolved: dict[str, PermissionTree] = {}

    def resolve(self, role_id: str) -> PermissionTree:
        """Return the resolved tree for ``role_id`` (memoized)."""
        role = self._roles.get(role_id)
        if role is None:
            raise ConfigurationError(f"Unknown role: {role_id!r}", role_id=role_id)
        return self._resolve(role, [])

    def resolve_all(self) -> dict[str, PermissionTree]:
        for role in self._roles.values():
            self._resolve(role, [])
        return dict(self._resolved)

    def _resolve(self, role: Role, stack: list[str]) -> PermissionTree:
        cached = self._resolved.get(role.id)
        if cached is not None:
            return cached

        if role.id in stack:
            cycle = stack[stack.index(role.id) :] + [role.id]
            raise ConfigurationError(
                f"Role inheritance cycle: {' -> '.join(cycle)}",
                cycle=cycle,
            )

        stack.append(role.id)
        tree = PermissionTree()
        for parent_id in role.inherit:
            parent = self._roles.get(parent_id)
            if parent is None:
                logger.warning("Role %r inherits unknown role %r, ignoring", role.id, parent_id)
                continue
            tree.merge(self._resolve(parent, stack))
        tree.merge(role.permissions)
        stack.pop()

        self._resolved[role.id] = tree
        return tree


def resolve_permissions(role: Role, roles: Mapping[str, Role]) -> PermissionTree:
    """Resolve ``role``'s permissions against ``roles`` into a new tree.

    Example::

        viewer = Role({"id": "viewer", "permissions": "posts.view"})
        editor = Role({"id": "editor", "permissions": "posts.edit", "inherit": "viewer"})
        tree = resolve_permissions(editor, {"viewer": viewer, "editor": editor})
        tree.matches("posts.view")  # True
    """
    lookup = dict(roles)
    lookup.setdefault(role.id, role)
    return InheritanceResolver(lookup).resolve(role.id).copy()


__all__ = [
    "InheritanceResolver",
    "resolve_permissions",
]
