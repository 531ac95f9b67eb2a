"""Authorization decision engine.

Maps an identity's claims to candidate roles through the claims index, then
evaluates the request:

- ``authorize_by_permissions`` — every requested permission must be granted
  by at least one candidate role.
- ``authorize_by_roles`` — at least one requested role must be a candidate.

Both return the identity claims unchanged on success and raise
:class:`AuthorizationError` otherwise.

Usage::

    authorizer = Authorizer(
        [
            {"id": "admin", "permissions": "*", "claims": {"groups": "admin"}},
            {"id": "viewer", "permissions": "posts.view", "claims": {"groups": ["viewer"]}},
        ],
        strict=True,
    )
    authorizer.authorize_by_permissions({"groups": ["viewer"]}, "posts.view")

An Authorizer is immutable once built and safe to share between threads.
Publish a process-wide instance with :func:`publish_authorizer` and replace
it wholesale when policy changes.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Mapping, Optional, Union

from .config import AuthorizerConfig
from .exceptions import AuthorizationError, ConfigurationError
from .logging import get_decision_logger, safe_log_value
from .registry import PolicyDocument, PolicyRegistry
from .role import Role

logger = logging.getLogger(__name__)
decision_logger = get_decision_logger(__name__)

Names = Union[str, Iterable[str], None]


def _names(value: Names) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str) or not isinstance(value, Iterable):
        return (value,)
    return tuple(v for v in value if v)


class Authorizer:
    """Decision engine over one immutable policy.

    Args:
        roles: Policy document (list of role declarations).
        config: Engine configuration. Keyword overrides (``strict=True``,
            ``default_claim_keys="groups"``) are applied on top of it.

    Raises:
        ConfigurationError: On an invalid policy document or configuration.
    """

    def __init__(
        self,
        roles: Optional[PolicyDocument] = None,
        config: Optional[AuthorizerConfig] = None,
        **overrides: Any,
    ) -> None:
        config = config or AuthorizerConfig()
        if overrides:
            try:
                config = AuthorizerConfig(**{**config.model_dump(), **overrides})
            except ValueError as e:
                raise ConfigurationError(f"Invalid authorizer configuration: {e}") from e

        self._config = config
        self._registry = PolicyRegistry(roles, strict=config.strict)

    # ── Lookups ─────────────────────────────────────────────

    @property
    def config(self) -> AuthorizerConfig:
        return self._config

    @property
    def registry(self) -> PolicyRegistry:
        return self._registry

    @property
    def roles(self) -> list[Role]:
        return list(self._registry)

    def get_role(self, role_id: str) -> Optional[Role]:
        return self._registry.get(role_id)

    def get_roles_by_id(self, ids: Names) -> list[Role]:
        return self._registry.get_roles_by_id(_names(ids))

    def get_roles_by_claim(self, key: str, value: Any) -> list[Role]:
        return self._registry.claims_index.roles_for_claim(key, value)

    def candidate_roles(
        self,
        identity_claims: Optional[Mapping[str, Any]],
        claim_keys: Names = None,
    ) -> list[Role]:
        """Roles the identity maps to.

        ``claim_keys`` defaults to the configured ``default_claim_keys``,
        then to every key present on the identity.
        """
        if not identity_claims:
            return []
        keys = _names(claim_keys) or self._config.default_claim_keys
        return self._registry.claims_index.candidate_roles(identity_claims, keys)

    # ── Decisions ───────────────────────────────────────────

    def authorize_by_permissions(
        self,
        identity_claims: Optional[Mapping[str, Any]],
        permissions: Names,
        claim_keys: Names = None,
    ) -> Mapping[str, Any]:
        """Require every permission in ``permissions``.

        Returns:
            ``identity_claims``, unchanged.

        Raises:
            AuthorizationError: No claims, no permissions requested, or at
                least one permission not granted by any candidate role.
                ``error.missing`` lists the permissions not granted.
        """
        self._check_claims(identity_claims)
        requested = _names(permissions)
        if not requested:
            raise AuthorizationError("Not Authorized - No Permissions Provided")

        roles = self.candidate_roles(identity_claims, claim_keys)
        missing = [p for p in requested if not any(role.is_authorized(p) for role in roles)]

        if missing:
            decision_logger.debug(
                "Permission check denied: missing=%s candidates=%s claims=%s",
                missing,
                [role.id for role in roles],
                safe_log_value(identity_claims),
                decision="deny",
            )
            raise AuthorizationError(
                f"Not Authorized - Missing Required Permissions: {', '.join(map(str, missing))}",
                missing=missing,
                requested=list(requested),
            )

        decision_logger.debug("Permission check allowed: %s", list(requested), decision="allow")
        return identity_claims

    def authorize_by_roles(
        self,
        identity_claims: Optional[Mapping[str, Any]],
        role_ids: Names,
        claim_keys: Names = None,
    ) -> Mapping[str, Any]:
        """Require any one of ``role_ids``.

        Returns:
            ``identity_claims``, unchanged.

        Raises:
            AuthorizationError: No claims, no roles requested, or none of the
                requested roles is a candidate for the identity.
        """
        self._check_claims(identity_claims)
        requested = _names(role_ids)
        if not requested:
            raise AuthorizationError("Not Authorized - No Roles Provided")

        candidates = {role.id for role in self.candidate_roles(identity_claims, claim_keys)}
        if not any(role_id in candidates for role_id in requested):
            decision_logger.debug(
                "Role check denied: requested=%s candidates=%s claims=%s",
                list(requested),
                sorted(candidates),
                safe_log_value(identity_claims),
                decision="deny",
            )
            raise AuthorizationError(
                f"Not Authorized - Missing one of Required Roles: {', '.join(map(str, requested))}",
                missing=requested,
                requested=list(requested),
            )

        decision_logger.debug("Role check allowed: %s", list(requested), decision="allow")
        return identity_claims

    def is_authorized(
        self,
        identity_claims: Optional[Mapping[str, Any]],
        permissions: Names,
        claim_keys: Names = None,
    ) -> bool:
        """Boolean form of :meth:`authorize_by_permissions`."""
        try:
            self.authorize_by_permissions(identity_claims, permissions, claim_keys)
        except AuthorizationError:
            return False
        return True

    def is_role(
        self,
        identity_claims: Optional[Mapping[str, Any]],
        role_ids: Names,
        claim_keys: Names = None,
    ) -> bool:
        """Boolean form of :meth:`authorize_by_roles`."""
        try:
            self.authorize_by_roles(identity_claims, role_ids, claim_keys)
        except AuthorizationError:
            return False
        return True

    # Awaitable wrappers for async call sites. They never suspend: the
    # decision is computed synchronously before the coroutine returns.

    async def verify_permissions(
        self,
        identity_claims: Optional[Mapping[str, Any]],
        permissions: Names,
        claim_keys: Names = None,
    ) -> Mapping[str, Any]:
        return self.authorize_by_permissions(identity_claims, permissions, claim_keys)

    async def verify_roles(
        self,
        identity_claims: Optional[Mapping[str, Any]],
        role_ids: Names,
        claim_keys: Names = None,
    ) -> Mapping[str, Any]:
        return self.authorize_by_roles(identity_claims, role_ids, claim_keys)

    @staticmethod
    def _check_claims(identity_claims: Any) -> None:
        if not identity_claims:
            raise AuthorizationError("Not Authorized - No Claims Provided")
        if not isinstance(identity_claims, Mapping):
            raise AuthorizationError(
                f"Not Authorized - Claims must be a mapping, got {type(identity_claims).__name__}"
            )

    def __repr__(self) -> str:
        return f"Authorizer(roles={self._registry.role_ids()!r}, strict={self._config.strict})"


# ── Published instance ──────────────────────────────────────────

_published: Authorizer | None = None
_publish_lock = threading.Lock()


def publish_authorizer(authorizer: Authorizer) -> Authorizer | None:
    """Atomically replace the process-wide Authorizer.

    Returns:
        The previously published Authorizer, if any.
    """
    global _published
    with _publish_lock:
        previous, _published = _published, authorizer
    logger.info("Published authorizer with %d roles", len(authorizer.registry))
    return previous


def build_authorizer(
    roles: Optional[PolicyDocument],
    config: Optional[AuthorizerConfig] = None,
    **overrides: Any,
) -> Authorizer:
    """Build an Authorizer off to the side, then publish it.

    If the build fails, the currently published Authorizer stays in place.
    """
    authorizer = Authorizer(roles, config, **overrides)
    publish_authorizer(authorizer)
    return authorizer


def get_authorizer() -> Authorizer:
    """Get the published Authorizer.

    Raises:
        ConfigurationError: If nothing has been published yet.
    """
    authorizer = _published
    if authorizer is None:
        raise ConfigurationError("No authorizer has been published")
    return authorizer


def reset_authorizer() -> None:
    """Clear the published Authorizer (for testing)."""
    global _published
    with _publish_lock:
        _published = None


__all__ = [
    "Authorizer",
    "build_authorizer",
    "get_authorizer",
    "publish_authorizer",
    "reset_authorizer",
]
