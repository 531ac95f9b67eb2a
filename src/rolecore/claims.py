"""Reverse index from identity claims to roles.

Each role declares the claim values that grant it (``groups: ["admin"]``).
The index inverts that: ``index["groups"]["admin"] -> [admin_role, ...]``,
so an identity's claims can be turned into candidate roles without
scanning every role.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from .exceptions import ConfigurationError
from .role import Role, claim_key

logger = logging.getLogger(__name__)


def _values(value: Any) -> list[Any]:
    """An identity claim value may be a single value or a list of values."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [v for v in value if v is not None]
    return [value]


class ClaimsIndex:
    """``claim_key -> claim_value -> [roles]``. Read-only once built."""

    __slots__ = ("_index", "_strict")

    def __init__(self, *, strict: bool = False) -> None:
        self._index: dict[str, dict[str, list[Role]]] = {}
        self._strict = strict

    @classmethod
    def build(cls, roles: Iterable[Role], *, strict: bool = False) -> ClaimsIndex:
        """Index every role's normalized claims.

        Raises:
            ConfigurationError: In strict mode, when a claim value is already
                mapped to another role.
        """
        index = cls(strict=strict)
        for role in roles:
            index._add(role)
        return index

    def _add(self, role: Role) -> None:
        for key, values in role.resolved_claims.items():
            by_value = self._index.setdefault(key, {})
            for value in sorted(values):
                mapped = by_value.setdefault(value, [])
                if mapped and self._strict:
                    raise ConfigurationError(
                        f"Ambiguous claim-to-role mapping: {key}={value!r} is claimed by "
                        f"{mapped[0].id!r} and {role.id!r}",
                        claim=key,
                        value=value,
                        roles=[mapped[0].id, role.id],
                    )
                if role not in mapped:
                    mapped.append(role)

    @property
    def strict(self) -> bool:
        return self._strict

    def keys(self) -> list[str]:
        return list(self._index)

    def roles_for_claim(self, key: str, value: Any) -> list[Role]:
        """Roles mapped from ``key`` for a value or list of values."""
        by_value = self._index.get(key)
        if not by_value:
            return []

        found: list[Role] = []
        for v in _values(value):
            for role in by_value.get(claim_key(v), ()):
                if role not in found:
                    found.append(role)
        return found

    def candidate_roles(
        self,
        identity_claims: Mapping[str, Any],
        claim_keys: Union[str, Iterable[str], None] = None,
    ) -> list[Role]:
        """Union of the roles mapped from each selected identity claim.

        Args:
            identity_claims: The identity's claims.
            claim_keys: A key or keys to consult. Defaults to every key on
                the identity.

        Returns:
            Deduplicated roles, in first-seen order. Missing keys and
            unmapped values contribute nothing.
        """
        if not identity_claims:
            return []

        if claim_keys is None:
            keys = list(identity_claims.keys())
        elif isinstance(claim_keys, str):
            keys = [claim_keys]
        else:
            keys = list(claim_keys)
        found: list[Role] = []
        for key in keys:
            if key not in identity_claims:
                continue
            for role in self.roles_for_claim(key, identity_claims[key]):
                if role not in found:
                    found.append(role)
        return found

    def to_dict(self) -> dict[str, dict[str, list[str]]]:
        """Role ids per claim value, for inspection and logging."""
        return {
            key: {value: [role.id for role in roles] for value, roles in by_value.items()}
            for key, by_value in self._index.items()
        }

    def __len__(self) -> int:
        return sum(len(by_value) for by_value in self._index.values())

    def __repr__(self) -> str:
        return f"ClaimsIndex(strict={self._strict}, entries={len(self)})"


__all__ = [
    "ClaimsIndex",
]
