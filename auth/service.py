"""
auth/service.py -- Credential orchestration: accounts, tokens, roles and identity links.

CredentialService is the only component that decides what a token or a
verification code means. It holds store handles and read-only settings,
nothing else -- every call gets its own CallContext for logging fields and
its deadline, and every store call receives that context.

Error policy:
  Domain outcomes (AlreadyExists, NotFound, BadCredentials, InvalidRole,
  VerificationFailed) are raised as-is for the boundary to translate.
  StoreUnavailable / DeadlineExceeded come up from the stores; the
  @_operation wrapper logs them once with the call's context and re-raises.
  check_service_token() is the one place where absence is a value (False)
  instead of an error.

Verification handshake:
  Step A  generate_auth_code(subject_id) caches `code -> subject_id` with a TTL.
  Step B  verify(account_id, code) reads the cached id and binds it to
          account_id through an IdentityLink, then deletes the code.
  The cache read happens before the link check, which happens before the
  delete. There is no transaction across the two stores: a crash between
  link creation and code deletion leaves the code usable until its TTL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import functools
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from auth.models import LoginResult, Role
from auth.store import AccountStore, SQLAccountStore
from auth.tokens import BcryptHasher, PasswordHasher, generate_auth_code, generate_token
from cache.store import CodeStore, MemoryCodeStore, RedisCodeStore
from core.config import Settings
from core.context import CallContext
from core.errors import (
    AlreadyExistsError,
    BadCredentialsError,
    DeadlineExceededError,
    InvalidRoleError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
    VerificationFailedError,
)


def _redact(secret: str) -> str:
    """Shorten a token for log output: first 8 chars only."""
    return f"{secret[:8]}..." if len(secret) > 8 else "***"


def _operation(name: str):
    """Bind the operation name into ctx and log infrastructure faults once.

    Domain errors are logged by the operation itself at the point where the
    decision is made; only store/deadline faults are handled here.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, ctx: CallContext, *args, **kwargs):
            ctx = ctx.bind(op=name)
            try:
                return fn(self, ctx, *args, **kwargs)
            except StoreUnavailableError as exc:
                ctx.log.error("store unavailable (retryable=%s)", exc.retryable, exc_info=exc.__cause__)
                raise
            except DeadlineExceededError as exc:
                ctx.log.warning("aborted: %s", exc.message)
                raise

        return wrapper

    return decorator


class CredentialService:
    """Issues and checks credentials and binds accounts to secondary identities.

    Usage:
        service = CredentialService.from_settings(get_settings(), accounts, codes)
        service.register(ctx, "alice", "s3cret-pass")
        result = service.login(ctx, "alice", "s3cret-pass")
        service.check_access_token(ctx, result.access_token)   # -> result.account_id
        service.close()
    """

    def __init__(
        self,
        accounts: AccountStore,
        codes: CodeStore,
        hasher: PasswordHasher | None = None,
        *,
        code_length: int = 6,
        code_ttl: int = 300,
        default_role: str = "user",
        code_write_mode: str = "blocking",
        code_write_timeout: float = 5.0,
    ) -> None:
        if code_write_mode not in ("blocking", "background"):
            raise ValueError(f"unknown code_write_mode: {code_write_mode!r}")
        self.accounts = accounts
        self.codes = codes
        self._hasher = hasher or BcryptHasher()
        self.code_length = code_length
        self.code_ttl = code_ttl
        self.default_role = default_role
        self.code_write_mode = code_write_mode
        self.code_write_timeout = code_write_timeout
        self._writer: ThreadPoolExecutor | None = None
        if code_write_mode == "background":
            self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="auth-code-writer")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        accounts: AccountStore,
        codes: CodeStore,
        hasher: PasswordHasher | None = None,
    ) -> CredentialService:
        return cls(
            accounts,
            codes,
            hasher or BcryptHasher(settings.bcrypt_rounds),
            code_length=settings.auth_code_length,
            code_ttl=settings.auth_code_ttl_seconds,
            default_role=settings.default_role,
            code_write_mode=settings.auth_code_write_mode,
            code_write_timeout=settings.auth_code_write_timeout_seconds,
        )

    def close(self) -> None:
        """Wait for pending background code writes, then stop the writer thread."""
        if self._writer is not None:
            self._writer.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Accounts and sessions
    # ------------------------------------------------------------------

    @_operation("register")
    def register(self, ctx: CallContext, username: str, password: str) -> None:
        """Create an account with the default role. No token is issued.

        The existence check runs first so the common duplicate case never
        pays for a bcrypt hash; the UNIQUE constraint still catches a
        concurrent registration of the same name (AlreadyExistsError).
        """
        if not username or not password:
            raise ValidationError("username and password are required")
        ctx = ctx.bind(username=username)
        ctx.log.info("registration attempt")

        if self.accounts.get_account_by_username(ctx, username) is not None:
            ctx.log.info("account already exists")
            raise AlreadyExistsError("Account with this username already exists.")

        digest = self._hasher.hash(password)
        try:
            account = self.accounts.create_account(ctx, username, digest, self.default_role)
        except AlreadyExistsError:
            ctx.log.info("account created concurrently")
            raise AlreadyExistsError("Account with this username already exists.") from None
        ctx.log.info("registration successful (account_id=%s)", account.id)

    @_operation("login")
    def login(self, ctx: CallContext, username: str, password: str) -> LoginResult:
        """Check the password and issue a fresh access token.

        Every successful login creates a new token; earlier tokens for the
        same account stay valid until logged out.
        """
        if not username or not password:
            raise ValidationError("username and password are required")
        ctx = ctx.bind(username=username)
        ctx.log.info("login attempt")

        account = self.accounts.get_account_by_username(ctx, username)
        if account is None:
            ctx.log.info("account not found")
            raise NotFoundError("account")
        if not self._hasher.verify(password, account.password_hash):
            ctx.log.info("invalid password")
            raise BadCredentialsError()

        token = generate_token()
        self.accounts.create_access_token(ctx, account.id, token)
        ctx.log.info("login successful (account_id=%s)", account.id)
        return LoginResult(account_id=account.id, access_token=token)

    @_operation("logout")
    def logout(self, ctx: CallContext, access_token: str) -> None:
        """Delete exactly the row for access_token.

        A second logout with the same token raises NotFoundError -- deletion
        is not treated as idempotent success.
        """
        ctx = ctx.bind(token=_redact(access_token))
        row = self.accounts.get_access_token_by_token(ctx, access_token)
        if row is None:
            ctx.log.info("token not found")
            raise NotFoundError("access_token")
        if not self.accounts.delete_access_token(ctx, row.id):
            # Lost a race with a concurrent logout of the same token.
            raise NotFoundError("access_token")
        ctx.log.info("logout successful (account_id=%s)", row.account_id)

    @_operation("check_access_token")
    def check_access_token(self, ctx: CallContext, access_token: str) -> int:
        """Return the account id owning access_token. Tokens never expire here."""
        row = self.accounts.get_access_token_by_token(ctx, access_token)
        if row is None:
            ctx.log.info("access token not found (token=%s)", _redact(access_token))
            raise NotFoundError("access_token")
        return row.account_id

    # ------------------------------------------------------------------
    # Service tokens
    # ------------------------------------------------------------------

    @_operation("generate_service_token")
    def generate_service_token(self, ctx: CallContext, service_name: str) -> str:
        """Return the token for service_name, creating it on first request.

        Idempotent: an existing token is returned unchanged. If two callers
        race on the first issuance, the loser re-reads and returns the
        winner's token, so both see the same value.
        """
        if not service_name:
            raise ValidationError("service name is required")
        ctx = ctx.bind(service_name=service_name)

        existing = self.accounts.get_service_token_by_name(ctx, service_name)
        if existing is not None:
            ctx.log.info("service token already exists")
            return existing.token

        token = generate_token()
        try:
            self.accounts.create_service_token(ctx, service_name, token)
        except AlreadyExistsError:
            winner = self.accounts.get_service_token_by_name(ctx, service_name)
            if winner is None:
                raise
            ctx.log.info("service token created concurrently")
            return winner.token
        ctx.log.info("service token generated")
        return token

    @_operation("check_service_token")
    def check_service_token(self, ctx: CallContext, service_token: str) -> bool:
        """Return True iff service_token exists. Absence is False, not an error."""
        found = self.accounts.get_service_token_by_token(ctx, service_token) is not None
        if not found:
            ctx.log.info("service token not found (token=%s)", _redact(service_token))
        return found

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    @_operation("get_role")
    def get_role(self, ctx: CallContext, account_id: int) -> str:
        account = self.accounts.get_account_by_id(ctx, account_id)
        if account is None:
            ctx.log.info("account not found (account_id=%s)", account_id)
            raise NotFoundError("account")
        return account.role

    @_operation("set_role")
    def set_role(self, ctx: CallContext, account_id: int, role: str) -> None:
        """Repoint an account's role.

        The role is validated before the account is looked up, so an unknown
        role never touches the account row. Concurrent calls: last write wins.
        """
        ctx = ctx.bind(account_id=account_id, role=role)

        role_row = self.accounts.get_role_by_title(ctx, role)
        if role_row is None:
            ctx.log.info("role does not exist")
            raise InvalidRoleError(role)
        if self.accounts.get_account_by_id(ctx, account_id) is None:
            ctx.log.info("account not found")
            raise NotFoundError("account")
        if not self.accounts.update_account_role(ctx, account_id, role_row.id):
            raise NotFoundError("account")
        ctx.log.info("role set")

    @_operation("create_role")
    def create_role(self, ctx: CallContext, title: str) -> Role:
        if not title:
            raise ValidationError("role title is required")
        if self.accounts.get_role_by_title(ctx, title) is not None:
            raise AlreadyExistsError(f"Role '{title}' already exists.")
        role = self.accounts.create_role(ctx, title)
        ctx.log.info("role created (title=%s)", title)
        return role

    # ------------------------------------------------------------------
    # Verification handshake
    # ------------------------------------------------------------------

    @_operation("generate_auth_code")
    def generate_auth_code(self, ctx: CallContext, subject_id: int) -> str:
        """Step A: issue a numeric code that maps to subject_id for code_ttl seconds.

        Blocking mode waits for the code store; a store fault raises and no
        code is handed out. Background mode returns immediately and the
        write runs on the writer thread under its own deadline -- a request
        that finishes first must not cancel it. A failed background write
        is logged and the code simply never verifies.
        """
        ctx = ctx.bind(subject_id=subject_id)
        code = generate_auth_code(self.code_length)

        if self._writer is None:
            self.codes.set(ctx, code, subject_id, self.code_ttl)
            ctx.log.info("auth code stored")
            return code

        write_ctx = CallContext.with_timeout(
            "generate_auth_code.write", self.code_write_timeout, subject_id=subject_id
        )
        future = self._writer.submit(self.codes.set, write_ctx, code, subject_id, self.code_ttl)
        future.add_done_callback(functools.partial(_report_code_write, write_ctx))
        ctx.log.info("auth code issued, write dispatched")
        return code

    @_operation("verify")
    def verify(self, ctx: CallContext, account_id: int, code: str) -> bool:
        """Step B: redeem code on behalf of account_id.

        1. Look the code up; absent or expired -> VerificationFailed.
        2. Reuse the account's IdentityLink, or create one pointing at the
           cached id. Any creation failure -> VerificationFailed.
        3. An existing link must point at the cached id.
        4. Delete the code. If it is already gone, a concurrent verify
           redeemed it first -> VerificationFailed. If the delete itself
           fails the match already stands, so the error is a retryable
           StoreUnavailable, not a verification failure.
        """
        ctx = ctx.bind(account_id=account_id)

        cached: Any = self.codes.get(ctx, code)
        if cached is None:
            ctx.log.info("auth code not found or expired")
            raise VerificationFailedError()
        if isinstance(cached, bool) or not isinstance(cached, int):
            ctx.log.warning("auth code holds a non-integer identity; rejecting")
            raise VerificationFailedError()
        secondary_id: int = cached

        link = self.accounts.get_link_by_account_id(ctx, account_id)
        if link is None:
            try:
                link = self.accounts.create_link(ctx, account_id, secondary_id)
            except (AlreadyExistsError, NotFoundError, StoreUnavailableError) as exc:
                ctx.log.info("failed to create identity link: %s", exc.kind)
                raise VerificationFailedError() from exc
            ctx.log.info("identity link created (secondary_id=%s)", secondary_id)

        if link.secondary_id != secondary_id:
            ctx.log.info("identity mismatch")
            raise VerificationFailedError()

        try:
            deleted = self.codes.delete(ctx, code)
        except StoreUnavailableError as exc:
            raise StoreUnavailableError(
                "Verification succeeded but the code could not be cleared; retry the request.",
                retryable=True,
            ) from exc
        if not deleted:
            # A concurrent verify consumed the code after our lookup.
            ctx.log.info("auth code already redeemed")
            raise VerificationFailedError()
        ctx.log.info("auth code verified")
        return True


def _report_code_write(ctx: CallContext, future: Future) -> None:
    """Done-callback for background code writes: log only a real failure."""
    if future.cancelled():
        ctx.log.warning("auth code write cancelled before it ran")
        return
    exc = future.exception()
    if exc is not None:
        ctx.log.error("failed to store auth code: %s", type(exc).__name__, exc_info=exc)


def build_service(settings: Settings) -> CredentialService:
    """Wire a CredentialService to the stores named in settings.

    The caller owns the result: call close_service() on shutdown.
    """
    accounts = SQLAccountStore(settings.database_url)
    codes: CodeStore
    if settings.code_store_backend == "memory":
        codes = MemoryCodeStore()
    else:
        codes = RedisCodeStore(settings.redis_url, socket_timeout=settings.redis_socket_timeout_seconds)
    return CredentialService.from_settings(settings, accounts, codes)


def close_service(service: CredentialService) -> None:
    """Drain background writes first, then release both stores."""
    service.close()
    service.codes.close()
    service.accounts.close()
