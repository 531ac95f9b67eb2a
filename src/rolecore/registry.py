"""Policy registry: owns every Role and the claims index built from them.

Build order:
1. Validate and create each Role (claims normalized immediately).
2. Resolve each Role's permissions through inheritance.
3. Build the ClaimsIndex.

The registry is not modified after construction. To change policy, build a
new registry (or Authorizer) and swap the published reference.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

from .claims import ClaimsIndex
from .exceptions import ConfigurationError
from .permissions.inheritance import InheritanceResolver
from .role import Role, RoleDeclaration

logger = logging.getLogger(__name__)

PolicyDocument = Iterable[Union[RoleDeclaration, Mapping[str, Any]]]


class PolicyRegistry:
    """All roles of one policy, keyed by id.

    Args:
        roles: The policy document, a list of role declarations. A single
            declaration mapping is accepted as a one-role policy.
        strict: Reject claim values that map to more than one role.

    Raises:
        ConfigurationError: Missing role id, duplicate role id, inheritance
            cycle, or (strict) ambiguous claim mapping.
    """

    def __init__(self, roles: Optional[PolicyDocument] = None, *, strict: bool = False) -> None:
        if isinstance(roles, (Mapping, RoleDeclaration)):
            roles = [roles]

        self._roles: dict[str, Role] = {}
        for declaration in roles or ():
            role = Role(declaration)
            if role.id in self._roles:
                raise ConfigurationError(f"Duplicate role id: {role.id!r}", role_id=role.id)
            self._roles[role.id] = role

        resolver = InheritanceResolver(self._roles)
        for role_id, tree in resolver.resolve_all().items():
            self._roles[role_id].resolved_permissions = tree

        self._claims = ClaimsIndex.build(self._roles.values(), strict=strict)
        self._strict = strict

        logger.info(
            "Policy registry built: %d roles, %d claim mappings (strict=%s)",
            len(self._roles),
            len(self._claims),
            strict,
        )

    @property
    def claims_index(self) -> ClaimsIndex:
        return self._claims

    @property
    def strict(self) -> bool:
        return self._strict

    def get(self, role_id: str) -> Optional[Role]:
        return self._roles.get(role_id)

    def get_roles_by_id(self, ids: Iterable[str] | str) -> list[Role]:
        """Known roles for ``ids``; unknown ids are skipped."""
        if isinstance(ids, str):
            ids = [ids]
        return [self._roles[i] for i in ids if i in self._roles]

    def role_ids(self) -> list[str]:
        return list(self._roles)

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._roles

    def __iter__(self) -> Iterator[Role]:
        return iter(self._roles.values())

    def __len__(self) -> int:
        return len(self._roles)

    def __repr__(self) -> str:
        return f"PolicyRegistry(roles={self.role_ids()!r}, strict={self._strict})"


__all__ = [
    "PolicyDocument",
    "PolicyRegistry",
]
