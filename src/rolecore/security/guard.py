"""Request guard — glue between a request pipeline and the Authorizer.

Provides:
- ``get_claims()`` — read identity claims from a request at a dotted location.
- ``RequestGuard`` — authentication check, permission/role checks with
  redirect bookkeeping, handler decorators and view helpers.

The guard is framework-agnostic. A request is any object (or mapping) that
carries identity claims at ``config.claim_location``; optionally a
``session`` mapping, an ``original_url`` / ``url`` attribute, a
``request_id`` (attached to decision log records) and an
``is_authenticated()`` method.
"""

from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Callable, Mapping, Optional

from ..authorizer import Authorizer
from ..config import GuardOptions
from ..exceptions import AuthenticationError, AuthorizationError
from ..logging import DecisionLoggerAdapter, get_decision_logger

logger = logging.getLogger(__name__)

AuthPredicate = Callable[[Any], bool]


def get_claims(request: Any, claim_location: str) -> Optional[Mapping[str, Any]]:
    """Look up identity claims on ``request`` at a dotted path.

    Each step reads a mapping key or, failing that, an attribute::

        get_claims(request, "user")        # request.user / request["user"]
        get_claims(request, "state.user")  # request.state.user

    Returns:
        The claims, or None when any step is missing.
    """
    current = request
    for part in claim_location.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def _default_is_authenticated(request: Any) -> bool:
    """Delegate to ``request.is_authenticated()`` when the request provides it."""
    check = getattr(request, "is_authenticated", None)
    return bool(callable(check) and check())


def _field(request: Any, name: str) -> Any:
    return request.get(name) if isinstance(request, Mapping) else getattr(request, name, None)


def _decision_logger(request: Any) -> DecisionLoggerAdapter:
    """Decision logger tagged with the request's ``request_id``, when it has one."""
    request_id = _field(request, "request_id")
    return get_decision_logger(__name__, request_id=str(request_id) if request_id else None)


def _remember_redirect(request: Any) -> None:
    """Store the original URL in ``request.session["redirect"]`` unless one is already stored."""
    session = _field(request, "session")
    if session is None:
        return
    if session.get("redirect"):
        return
    for attr in ("original_url", "url", "path"):
        value = _field(request, attr)
        if value:
            session["redirect"] = str(value)
            return


def _options(options: Optional[GuardOptions], **kwargs: Any) -> GuardOptions:
    if options is None:
        return GuardOptions(**kwargs)
    if kwargs:
        return GuardOptions(**{**options.model_dump(), **kwargs})
    return options


class RequestGuard:
    """Authentication and authorization checks for one request pipeline.

    Args:
        authorizer: The decision engine. Its ``config.claim_location`` says
            where claims live on a request. When omitted, the published
            Authorizer is looked up on every check, so a policy swap takes
            effect on the next request.
        is_authenticated: Predicate deciding whether a request carries an
            authenticated identity. Defaults to ``request.is_authenticated()``.

    Usage::

        guard = RequestGuard(authorizer)

        @guard.require_permissions("posts.edit", redirect=True)
        async def edit_post(request, post_id):
            ...
    """

    def __init__(
        self,
        authorizer: Optional[Authorizer] = None,
        *,
        is_authenticated: Optional[AuthPredicate] = None,
    ) -> None:
        self._authorizer = authorizer
        self._is_authenticated = is_authenticated or _default_is_authenticated

    @property
    def authorizer(self) -> Authorizer:
        if self._authorizer is not None:
            return self._authorizer
        from ..authorizer import get_authorizer

        return get_authorizer()

    def claims_for(self, request: Any) -> Optional[Mapping[str, Any]]:
        return get_claims(request, self.authorizer.config.claim_location)

    # ── Checks ──────────────────────────────────────────────

    def ensure_authenticated(self, request: Any, options: Optional[GuardOptions] = None) -> None:
        """Raise AuthenticationError unless the request is authenticated."""
        options = _options(options)
        if self._is_authenticated(request):
            return
        _decision_logger(request).info("Request not authenticated", decision="deny")
        if options.redirect:
            _remember_redirect(request)
        raise AuthenticationError("Not Authenticated")

    def check_permissions(self, request: Any, options: GuardOptions) -> Mapping[str, Any]:
        """Authorize the request's claims against ``options.permissions``."""
        authorizer = self.authorizer
        claims = get_claims(request, authorizer.config.claim_location)
        try:
            result = authorizer.authorize_by_permissions(claims, options.permissions, options.claim_keys)
        except AuthorizationError as e:
            _decision_logger(request).info("Permission check failed: %s", e.message, decision="deny")
            if options.redirect:
                _remember_redirect(request)
            raise
        _decision_logger(request).debug("Permission check passed: %s", list(options.permissions), decision="allow")
        return result

    def check_roles(self, request: Any, options: GuardOptions) -> Mapping[str, Any]:
        """Authorize the request's claims against ``options.roles``."""
        authorizer = self.authorizer
        claims = get_claims(request, authorizer.config.claim_location)
        try:
            result = authorizer.authorize_by_roles(claims, options.roles, options.claim_keys)
        except AuthorizationError as e:
            _decision_logger(request).info("Role check failed: %s", e.message, decision="deny")
            if options.redirect:
                _remember_redirect(request)
            raise
        _decision_logger(request).debug("Role check passed: %s", list(options.roles), decision="allow")
        return result

    # ── Decorators ──────────────────────────────────────────

    def require_authenticated(self, **options: Any) -> Callable:
        opts = _options(None, **options)
        return self._wrap(lambda request: self.ensure_authenticated(request, opts))

    def require_permissions(self, *permissions: str, **options: Any) -> Callable:
        """Decorate a handler whose first argument is the request.

        Every listed permission is required.
        """
        opts = _options(None, permissions=permissions, **options)
        return self._wrap(lambda request: self.check_permissions(request, opts))

    def require_roles(self, *roles: str, **options: Any) -> Callable:
        """Decorate a handler whose first argument is the request.

        Any one of the listed roles is enough.
        """
        opts = _options(None, roles=roles, **options)
        return self._wrap(lambda request: self.check_roles(request, opts))

    @staticmethod
    def _wrap(check: Callable[[Any], Any]) -> Callable:
        def decorator(handler: Callable) -> Callable:
            if inspect.iscoroutinefunction(handler):

                @functools.wraps(handler)
                async def async_wrapper(request, *args, **kwargs):
                    check(request)
                    return await handler(request, *args, **kwargs)

                return async_wrapper

            @functools.wraps(handler)
            def wrapper(request, *args, **kwargs):
                check(request)
                return handler(request, *args, **kwargs)

            return wrapper

        return decorator

    # ── View helpers ────────────────────────────────────────

    def view_helpers(self, request: Any) -> dict[str, Callable[..., bool]]:
        """Boolean helpers bound to one request, for templates.

        ``is_authorized(permissions, claim_keys=None)``, ``is_role(roles,
        claim_keys=None)`` and ``is_authenticated()``. They never raise.
        """
        authorizer = self.authorizer
        claims = get_claims(request, authorizer.config.claim_location)

        def is_authorized(permissions: Any, claim_keys: Any = None) -> bool:
            return authorizer.is_authorized(claims, permissions, claim_keys)

        def is_role(roles: Any, claim_keys: Any = None) -> bool:
            return authorizer.is_role(claims, roles, claim_keys)

        def is_authenticated() -> bool:
            try:
                return bool(self._is_authenticated(request))
            except Exception as e:
                logger.warning("Authentication predicate failed: %s", e)
                return False

        return {
            "is_authorized": is_authorized,
            "is_role": is_role,
            "is_authenticated": is_authenticated,
        }


__all__ = [
    "AuthPredicate",
    "RequestGuard",
    "get_claims",
]
