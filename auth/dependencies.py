"""
auth/dependencies.py -- FastAPI Depends() helpers for the credential endpoints.

get_service() hands route handlers the CredentialService built in lifespan.
get_call_context() creates a fresh CallContext per request, bounded by
REQUEST_TIMEOUT_SECONDS, so every store call made on behalf of the request
shares one deadline and one set of log fields.

Layer rule: no imports from api/ or cache/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.service import CredentialService
from core.config import get_settings
from core.context import CallContext


def get_service(request: Request) -> CredentialService:
    """Return the application-wide CredentialService from app.state."""
    return request.app.state.service


def get_call_context(request: Request) -> CallContext:
    """Build the per-request CallContext.

    The route path names the operation until the service binds its own name;
    the client address is kept as a log field for auditing failed logins.
    """
    client = request.client.host if request.client else "unknown"
    return CallContext.with_timeout(
        request.url.path,
        get_settings().request_timeout_seconds,
        client=client,
    )
