"""
auth/models.py -- Domain dataclasses for credential and identity entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store maps rows onto them and the service does the work.

Verification codes have no dataclass: they live only in the code store as
`code -> secondary id` and are never persisted relationally.

Layer rule: no imports from api/, core/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Role:
    """A named permission level. Titles come from a small fixed vocabulary."""

    title: str  # "user", "admin"
    id: int | None = None


@dataclass
class Account:
    """A primary identity that can log in with a username and password.

    role holds the role *title*, not its id -- the store resolves the join so
    callers never handle role ids. password_hash is opaque outside the hasher.
    """

    username: str
    password_hash: str
    role: str = "user"
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class AccessToken:
    """Bearer credential for an authenticated session.

    Possession of `token` is the whole proof of identity, so the raw value is
    never logged. One account may hold several tokens (one per login).
    """

    account_id: int
    token: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class ServiceToken:
    """Bearer credential identifying a calling service. One per service_name."""

    service_name: str
    token: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class IdentityLink:
    """Durable pairing of an account with a secondary identity.

    secondary_id is the external platform's user id (e.g. a messaging-bot
    user). At most one link exists per account_id and per secondary_id.
    """

    account_id: int
    secondary_id: int
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class LoginResult:
    account_id: int
    access_token: str
