"""Role declarations and their normalized form.

A policy document is a list of role declarations::

    {
        "id": "editor",
        "description": "Can edit any post",
        "permissions": ["posts.*", "comments.view"],
        "inherit": "viewer",
        "claims": {"groups": ["editors", "staff"]},
    }

``permissions`` may be a single pattern, a list of patterns, or a mapping
of pattern → bool. ``claims`` values may be a bare value, a list of values,
or a mapping of value → bool. Both are normalized once, here; nothing
downstream looks at the declared shape again.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError
from .permissions.tree import PermissionTree

ClaimValue = Union[str, int, float, bool]

RawPermissions = Union[str, list[str], dict[str, bool], None]
RawClaims = Optional[dict[str, Any]]


def claim_key(value: Any) -> str:
    """Canonical form of a claim value, shared by roles and identities.

    Claim values arrive from tokens, headers and JSON documents, so ``3``
    and ``"3"`` name the same claim.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RoleDeclaration(BaseModel):
    """One entry of a policy document, validated."""

    id: str
    description: Optional[str] = None
    permissions: RawPermissions = None
    inherit: Union[str, list[str], None] = None
    claims: RawClaims = None

    model_config = {"extra": "ignore", "frozen": True}

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> str:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("Role requires id")
        return str(v)


def normalize_permissions(permissions: RawPermissions) -> dict[str, bool]:
    """Normalize declared permissions to ``pattern -> granted``.

    Empty patterns are dropped.
    """
    if not permissions:
        return {}
    if isinstance(permissions, str):
        return {permissions: True}
    if isinstance(permissions, Mapping):
        return {pattern: bool(granted) for pattern, granted in permissions.items() if pattern}
    return {pattern: True for pattern in permissions if pattern}


def normalize_claims(claims: RawClaims) -> dict[str, frozenset[str]]:
    """Normalize declared claims to ``claim_key -> {claim values}``.

    Supports claims as a mapping, a list, or a bare value::

        groups: ["admin"]
        groups: {"admin": True, "guest": False}
        groups: "admin"

    Values flagged false, and falsy bare values, are not claims.
    """
    result: dict[str, frozenset[str]] = {}
    if not claims:
        return result

    for key, value in claims.items():
        if isinstance(value, Mapping):
            values = {claim_key(v) for v, flag in value.items() if flag}
        elif isinstance(value, (list, tuple, set, frozenset)):
            values = {claim_key(v) for v in value if v is not None and v != ""}
        elif value:
            values = {claim_key(value)}
        else:
            values = set()
        result[str(key)] = frozenset(result.get(str(key), frozenset()) | values)

    return result


def _as_ids(value: Union[str, list[str], None]) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(v for v in value if v)


class Role:
    """A named bundle of permissions and the claim values that map to it.

    Attributes:
        id: Unique role identifier.
        description: Free-form description.
        inherit: Ids of roles whose permissions this role includes.
        resolved_claims: Normalized claims (``claim_key -> frozenset of values``).
        permissions: Tree of this role's own declared permissions.
        resolved_permissions: Own permissions merged over inherited ones.
            Set by the registry once every role exists.
    """

    __slots__ = (
        "id",
        "description",
        "inherit",
        "raw_permissions",
        "raw_claims",
        "resolved_claims",
        "permissions",
        "resolved_permissions",
    )

    def __init__(self, declaration: Union[RoleDeclaration, Mapping[str, Any]]) -> None:
        if not isinstance(declaration, RoleDeclaration):
            declaration = self.parse(declaration)

        self.id: str = declaration.id
        self.description: Optional[str] = declaration.description
        self.inherit: tuple[str, ...] = _as_ids(declaration.inherit)
        self.raw_permissions = declaration.permissions
        self.raw_claims = declaration.claims

        self.resolved_claims = normalize_claims(declaration.claims)
        self.permissions = PermissionTree.from_patterns(normalize_permissions(declaration.permissions))
        self.resolved_permissions: Optional[PermissionTree] = None

    @staticmethod
    def parse(raw: Mapping[str, Any]) -> RoleDeclaration:
        """Validate a raw declaration, raising ConfigurationError on bad input."""
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Role declaration must be a mapping, got {type(raw).__name__}")
        try:
            return RoleDeclaration.model_validate(dict(raw))
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            if "id" in fields or "id" not in raw:
                raise ConfigurationError("Role requires id", declaration=dict(raw)) from e
            raise ConfigurationError(
                f"Invalid role declaration {raw.get('id')!r}: {', '.join(fields)}",
                role_id=raw.get("id"),
            ) from e

    def has_claim(self, key: str, value: Any) -> bool:
        return claim_key(value) in self.resolved_claims.get(key, frozenset())

    def is_authorized(self, permission: str) -> bool:
        """Check a concrete permission against this role's resolved tree.

        Before resolution only the role's own declarations are consulted.
        """
        tree = self.resolved_permissions if self.resolved_permissions is not None else self.permissions
        return tree.matches(permission)

    def __repr__(self) -> str:
        return f"Role(id={self.id!r}, inherit={list(self.inherit)!r})"


__all__ = [
    "ClaimValue",
    "Role",
    "RoleDeclaration",
    "claim_key",
    "normalize_claims",
    "normalize_permissions",
]
