"""gRPC server interceptor enforcing rolecore decisions per RPC.

Provides:
- ``EnforcementMode`` — three-state toggle: off / warn / enforce.
- ``RpcRule`` — what an RPC requires (all of ``permissions``, any of ``roles``).
- ``extract_claims_from_metadata`` — identity claims from invocation metadata.
- ``ClaimsAuthorizationInterceptor`` — the server interceptor.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import grpc

from ..authorizer import Authorizer
from ..exceptions import AuthorizationError, get_grpc_status_code
from ..logging import get_decision_logger

logger = logging.getLogger(__name__)

# gRPC metadata key carrying the caller's identity claims (JSON object,
# optionally base64url-encoded).
GRPC_CLAIMS_HEADER = "x-identity-claims"

# Optional caller-supplied correlation id, attached to decision log records.
GRPC_REQUEST_ID_HEADER = "x-request-id"

ClaimsExtractor = Callable[[Mapping[str, str]], Optional[Mapping[str, Any]]]


class EnforcementMode(str, Enum):
    """Three-state enforcement toggle.

    - ``off``     — no checks, only caller logging.
    - ``warn``    — evaluate, log denials as WARNING, let the call through.
    - ``enforce`` — evaluate and deny on failure.

    Set via env ``ROLECORE_ENFORCEMENT=off|warn|enforce``.
    """

    OFF = "off"
    WARN = "warn"
    ENFORCE = "enforce"

    @classmethod
    def from_env(cls) -> EnforcementMode:
        """Read from ``ROLECORE_ENFORCEMENT`` env var (default: warn)."""
        import os

        raw = os.environ.get("ROLECORE_ENFORCEMENT", "warn").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            logger.warning(
                "Unknown ROLECORE_ENFORCEMENT=%r, defaulting to 'warn'",
                raw,
            )
            return cls.WARN


@dataclass(frozen=True)
class RpcRule:
    """Requirements for one RPC.

    Attributes:
        permissions: All of these permissions are required.
        roles: Any one of these roles is accepted.
        claim_keys: Claim keys to authorize against (None = engine default).

    When both are set, both checks must pass.
    """

    permissions: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()
    claim_keys: Optional[tuple[str, ...]] = None

    @classmethod
    def of(cls, value: Union[RpcRule, str, Sequence[str]]) -> RpcRule:
        """Shorthand: a permission string or list of permissions is a permission rule."""
        if isinstance(value, RpcRule):
            return value
        if isinstance(value, str):
            return cls(permissions=(value,))
        return cls(permissions=tuple(value))


_SKIP_PREFIXES = (
    "grpc.health.v1",
    "grpc.reflection.v1",
)


def _extract_rpc_name(full_method: str) -> str:
    """``/blog.PostService/EditPost`` → ``EditPost``"""
    return full_method.rsplit("/", 1)[-1] if "/" in full_method else full_method


def _should_skip(method: str) -> bool:
    return any(prefix in method for prefix in _SKIP_PREFIXES)


def extract_claims_from_metadata(metadata: Mapping[str, str]) -> Optional[Mapping[str, Any]]:
    """Decode identity claims from the ``x-identity-claims`` metadata value.

    Accepts a JSON object, either raw or base64url-encoded.

    Returns:
        The claims mapping, or None if absent or malformed.
    """
    raw = (metadata.get(GRPC_CLAIMS_HEADER) or "").strip()
    if not raw:
        return None

    text = raw
    if not raw.startswith("{"):
        try:
            padded = raw + "=" * (-len(raw) % 4)
            text = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError):
            logger.warning("Malformed %s metadata (not base64 JSON)", GRPC_CLAIMS_HEADER)
            return None

    try:
        claims = json.loads(text)
    except ValueError:
        logger.warning("Malformed %s metadata (not JSON)", GRPC_CLAIMS_HEADER)
        return None

    if not isinstance(claims, dict):
        logger.warning("Malformed %s metadata (not a JSON object)", GRPC_CLAIMS_HEADER)
        return None
    return claims


class ClaimsAuthorizationInterceptor(grpc.aio.ServerInterceptor):
    """gRPC server interceptor that authorizes each RPC against a rule map.

    Sits before all handlers and:
    1. Extracts identity claims from invocation metadata
    2. Maps the RPC name to its :class:`RpcRule`
    3. Evaluates the rule with the Authorizer
    4. Aborts with ``UNAUTHENTICATED`` (no claims) or ``PERMISSION_DENIED``

    Unmapped RPCs are denied (fail closed).

    Args:
        rpc_rules: RPC name → rule (or permission string / list shorthand).
        authorizer: Decision engine. Defaults to the published Authorizer,
            looked up per call.
        service_name: Name used in log messages.
        enforcement: Three-state mode; defaults to ``ROLECORE_ENFORCEMENT``.
        claims_extractor: Overrides how claims are read from metadata.

    Usage::

        interceptor = ClaimsAuthorizationInterceptor(
            {"GetPost": "posts.view", "EditPost": RpcRule(permissions=("posts.edit",))},
            authorizer=authorizer,
            service_name="Blog",
            enforcement=EnforcementMode.ENFORCE,
        )
        server = grpc.aio.server(interceptors=[interceptor])
    """

    def __init__(
        self,
        rpc_rules: Mapping[str, Union[RpcRule, str, Sequence[str]]],
        *,
        authorizer: Optional[Authorizer] = None,
        service_name: str = "Service",
        enforcement: Optional[EnforcementMode] = None,
        claims_extractor: Optional[ClaimsExtractor] = None,
    ) -> None:
        self._rules = {name: RpcRule.of(rule) for name, rule in rpc_rules.items()}
        self._authorizer = authorizer
        self._service_name = service_name
        self._mode = enforcement if enforcement is not None else EnforcementMode.from_env()
        self._extract_claims = claims_extractor or extract_claims_from_metadata

        if self._mode != EnforcementMode.OFF:
            logger.info(
                "%s interceptor mode: %s",
                self._service_name,
                self._mode.value,
            )

    def _get_authorizer(self) -> Authorizer:
        if self._authorizer is not None:
            return self._authorizer
        from ..authorizer import get_authorizer

        return get_authorizer()

    def evaluate(self, rpc_name: str, claims: Optional[Mapping[str, Any]]) -> tuple[Optional[str], Any]:
        """Evaluate one RPC.

        Returns:
            ``(None, None)`` if allowed, else ``(reason, grpc.StatusCode)``.
        """
        rule = self._rules.get(rpc_name)
        if rule is None:
            return "RPC not mapped to a rule", grpc.StatusCode.PERMISSION_DENIED
        if not claims:
            return "no identity claims", grpc.StatusCode.UNAUTHENTICATED

        authorizer = self._get_authorizer()
        try:
            if rule.permissions:
                authorizer.authorize_by_permissions(claims, rule.permissions, rule.claim_keys)
            if rule.roles:
                authorizer.authorize_by_roles(claims, rule.roles, rule.claim_keys)
        except AuthorizationError as e:
            return e.message, get_grpc_status_code(e)

        if not rule.permissions and not rule.roles:
            return "RPC rule is empty", grpc.StatusCode.PERMISSION_DENIED
        return None, None

    async def intercept_service(
        self,
        continuation: Any,
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        """Intercept incoming gRPC calls for authorization."""
        method = handler_call_details.method or ""

        if _should_skip(method):
            return await continuation(handler_call_details)

        if self._mode == EnforcementMode.OFF:
            return await continuation(handler_call_details)

        rpc_name = _extract_rpc_name(method)
        metadata = dict(handler_call_details.invocation_metadata or [])
        claims = self._extract_claims(metadata)
        decisions = get_decision_logger(__name__, request_id=metadata.get(GRPC_REQUEST_ID_HEADER))

        deny_reason, deny_code = self.evaluate(rpc_name, claims)

        if deny_reason:
            if self._mode == EnforcementMode.WARN:
                decisions.warning(
                    "%s WARN_DENIED '%s': %s (would block in enforce mode)",
                    self._service_name,
                    rpc_name,
                    deny_reason,
                    decision="warn",
                )
                return await continuation(handler_call_details)

            decisions.warning(
                "%s DENIED '%s': %s",
                self._service_name,
                rpc_name,
                deny_reason,
                decision="deny",
            )

            _deny_msg = f"{self._service_name}: {rpc_name} denied: {deny_reason}"
            _deny_status = deny_code

            async def _denied(request, context):
                await context.abort(_deny_status, _deny_msg)

            return grpc.unary_unary_rpc_method_handler(_denied)

        decisions.debug("%s ALLOWED '%s'", self._service_name, rpc_name, decision="allow")
        return await continuation(handler_call_details)


__all__ = [
    "ClaimsAuthorizationInterceptor",
    "EnforcementMode",
    "GRPC_CLAIMS_HEADER",
    "GRPC_REQUEST_ID_HEADER",
    "RpcRule",
    "extract_claims_from_metadata",
]
