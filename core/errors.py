"""
core/errors.py -- Error kinds raised by the credential service and its stores.

Every error carries a machine-readable `code`, a human-readable `message`
and the HTTP `status_code` the REST boundary returns for it. Domain kinds
(AlreadyExists, NotFound, BadCredentials, InvalidRole, VerificationFailed)
are expected outcomes and travel to the boundary as-is. StoreUnavailable
and DeadlineExceeded are infrastructure faults: their message is always
generic and the underlying exception is only reachable via __cause__.

Layer rule: core/ is the kernel. No imports from api/, auth/, or cache/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all service errors."""

    kind: str = "Internal"
    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AuthError):
    kind = "Validation"
    code = "validation_error"
    status_code = 400


class AlreadyExistsError(AuthError):
    kind = "AlreadyExists"
    code = "already_exists"
    status_code = 409


class NotFoundError(AuthError):
    """A keyed lookup came back empty.

    `resource` names what was missing ("account", "access_token", ...) so the
    boundary can render a precise message without string matching.
    """

    kind = "NotFound"
    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, message: str | None = None) -> None:
        self.resource = resource
        super().__init__(message or f"{resource.replace('_', ' ')} not found")


class BadCredentialsError(AuthError):
    kind = "BadCredentials"
    code = "bad_credentials"
    status_code = 401

    def __init__(self, message: str = "Invalid username or password.") -> None:
        super().__init__(message)


class InvalidRoleError(AuthError):
    kind = "InvalidRole"
    code = "invalid_role"
    status_code = 400

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Role '{role}' does not exist.")


class VerificationFailedError(AuthError):
    kind = "VerificationFailed"
    code = "verification_failed"
    status_code = 400

    def __init__(self, message: str = "Verification failed.") -> None:
        super().__init__(message)


class StoreUnavailableError(AuthError):
    """Transient fault in the account store or the code store.

    retryable=True tells the caller that repeating the request is safe and
    expected to succeed once the store recovers -- e.g. the code deletion
    after a verified match, where the verification decision already stands.
    """

    kind = "StoreUnavailable"
    code = "store_unavailable"
    status_code = 503

    def __init__(self, message: str = "Storage temporarily unavailable.", retryable: bool = False) -> None:
        self.retryable = retryable
        super().__init__(message)


class DeadlineExceededError(AuthError):
    kind = "DeadlineExceeded"
    code = "deadline_exceeded"
    status_code = 504

    def __init__(self, message: str = "Request deadline exceeded.") -> None:
        super().__init__(message)
