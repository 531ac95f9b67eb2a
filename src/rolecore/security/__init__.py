"""Request-pipeline integration for rolecore.

This package connects a hosting pipeline to the decision engine:
1. **Request guard** — authentication check, permission/role checks,
   handler decorators and template helpers for any request object
2. **gRPC interceptors** — per-RPC rules enforced before handlers run

Usage::

    from rolecore.security import RequestGuard, get_authorization_interceptors

    guard = RequestGuard(authorizer)
    server = grpc.aio.server(
        interceptors=get_authorization_interceptors({"GetPost": "posts.view"}),
    )

Configuration (env vars)::

    ROLECORE_ENFORCEMENT=enforce    # off | warn | enforce (default: warn)
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

import grpc

from .guard import AuthPredicate, RequestGuard, get_claims
from .interceptors import (
    GRPC_CLAIMS_HEADER,
    GRPC_REQUEST_ID_HEADER,
    ClaimsAuthorizationInterceptor,
    EnforcementMode,
    RpcRule,
    extract_claims_from_metadata,
)


def get_authorization_interceptors(
    rpc_rules: Mapping[str, Union[RpcRule, str, Sequence[str]]],
    *,
    enforcement: Optional[EnforcementMode] = None,
    **kwargs: Any,
) -> list[grpc.aio.ServerInterceptor]:
    """Get gRPC server interceptors for authorization.

    Returns an empty list when enforcement is ``off``.

    Args:
        rpc_rules: RPC name → rule.
        enforcement: Mode override; defaults to ``ROLECORE_ENFORCEMENT``.
        **kwargs: Passed to :class:`ClaimsAuthorizationInterceptor`.
    """
    mode = enforcement if enforcement is not None else EnforcementMode.from_env()
    if mode == EnforcementMode.OFF:
        return []
    return [ClaimsAuthorizationInterceptor(rpc_rules, enforcement=mode, **kwargs)]


__all__ = [
    # Guard
    "AuthPredicate",
    "RequestGuard",
    "get_claims",
    # Interceptors
    "ClaimsAuthorizationInterceptor",
    "EnforcementMode",
    "GRPC_CLAIMS_HEADER",
    "GRPC_REQUEST_ID_HEADER",
    "RpcRule",
    "extract_claims_from_metadata",
    "get_authorization_interceptors",
]
