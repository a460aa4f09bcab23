"""
auth/lifecycle.py -- Account confirmation, password reset, login, and profile.

AccountLifecycle owns every state transition of an Account:

    Unconfirmed --confirm(token)--> Confirmed   (terminal; password changes keep it)

and the single-use VerificationToken that authorizes confirmation and reset.

Invariants enforced here:
  One live token per account. Every issuance goes through _reissue(), which
  holds the account's striped lock around AccountStore.replace_token() (one
  delete-and-insert transaction). Two concurrent requests for the same account
  therefore serialize; the later one supersedes the earlier token and neither
  can delete the other's fresh token mid-flight.

  Account + token writes are atomic. register, confirm and reset_password use
  the store's single-transaction primitives; a failure in either write leaves
  nothing behind.

  Tokens expire. A token older than token_ttl_seconds is rejected with
  InvalidToken and deleted on sight, matching the lifetime the emails state.

Error policy:
  User-input conditions raise the typed errors in auth/errors.py.
  SQLAlchemy failures (including SQLite lock timeouts) are logged and
  re-raised as InternalFailure -- no internal detail reaches the caller.
  Email delivery is fire-and-forget: it runs after the commit and a failed
  send never rolls back the token.

Layer rule: no imports from api/, projects/, or notify/. The email sender is
any object satisfying the EmailSender protocol.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Iterator
from typing import Protocol

from jose import JWTError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    AccountNotConfirmed,
    AlreadyConfirmed,
    DuplicateEmail,
    InternalFailure,
    InvalidPassword,
    InvalidToken,
    UnknownAccount,
    UnknownEmail,
)
from auth.models import Account, VerificationToken, normalize_email
from auth.store import AccountStore, TokenConsumed
from auth.tokens import TokenIssuer, burn_password_check, hash_password, new_verification_code, verify_password

logger = logging.getLogger("taskboard.auth.lifecycle")

_LOCK_STRIPES = 64


class EmailSender(Protocol):
    def send_confirmation(self, email: str, name: str, token: str) -> bool: ...

    def send_password_reset(self, email: str, name: str, token: str) -> bool: ...


@contextlib.contextmanager
def _persistence_guard(operation: str) -> Iterator[None]:
    """Convert storage faults into InternalFailure at the operation boundary."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Persistence failure during %s", operation)
        raise InternalFailure() from exc


class AccountLifecycle:
    """Registration, confirmation, login and password management.

    Usage:
        lifecycle = AccountLifecycle(store, issuer, mailer, token_ttl_seconds=600)
        lifecycle.register("Ann", "ann@example.com", "s3cret-pass")
        lifecycle.confirm(code_from_email)
        credential = lifecycle.login("ann@example.com", "s3cret-pass")
    """

    def __init__(
        self,
        store: AccountStore,
        issuer: TokenIssuer,
        mailer: EmailSender,
        token_ttl_seconds: int = 600,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.mailer = mailer
        self.token_ttl_seconds = token_ttl_seconds
        self._locks = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))

    # ------------------------------------------------------------------
    # Registration and confirmation
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str) -> str:
        """Create an unconfirmed account with its first confirmation token.

        Raises DuplicateEmail if the (normalized) email is taken, including
        when a concurrent registration wins the race to the UNIQUE index.
        """
        with _persistence_guard("register"):
            if self.store.find_account_by_email(email) is not None:
                raise DuplicateEmail()
            draft = Account(email=normalize_email(email), name=name, hashed_password=hash_password(password))
            try:
                account, token = self.store.create_account_with_token(draft, new_verification_code())
            except IntegrityError as exc:
                raise DuplicateEmail() from exc

        logger.info("Account %d registered", account.id)
        self._send_confirmation(account, token)
        return "Account created, check your email to confirm it."

    def confirm(self, token: str) -> str:
        """Consume a confirmation token and mark its account confirmed."""
        with _persistence_guard("confirm"):
            record = self._live_token(token)
            try:
                self.store.confirm_with_token(record.id, record.account_id)
            except TokenConsumed as exc:
                raise InvalidToken() from exc

        logger.info("Account %d confirmed", record.account_id)
        return "Account confirmed successfully."

    def request_new_confirmation_code(self, email: str) -> str:
        """Supersede any outstanding token for an unconfirmed account and email a new one."""
        with _persistence_guard("request_new_confirmation_code"):
            account = self.store.find_account_by_email(email)
            if account is None:
                raise UnknownEmail()
            if account.confirmed:
                raise AlreadyConfirmed()
            token = self._reissue(account.id)

        self._send_confirmation(account, token)
        return "A new code has been sent to your email."

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> str:
        """Return a fresh session credential for a confirmed account.

        An unconfirmed account never gets a credential: its outstanding token
        is replaced, a new confirmation email goes out, and the call fails
        with AccountNotConfirmed.
        """
        with _persistence_guard("login"):
            account = self.store.find_account_by_email(email)
            if account is None:
                # Equalize timing -- do NOT return before running bcrypt [C1]
                burn_password_check(password)
                raise UnknownEmail()
            token = None if account.confirmed else self._reissue(account.id)

        if token is not None:
            self._send_confirmation(account, token)
            raise AccountNotConfirmed()

        if not verify_password(password, account.hashed_password):
            raise InvalidPassword()

        try:
            credential = self.issuer.issue_session(account.id)
        except JWTError as exc:
            logger.exception("Session signing failed for account %d", account.id)
            raise InternalFailure() from exc
        logger.info("Account %d logged in", account.id)
        return credential

    # ------------------------------------------------------------------
    # Password reset (token-based)
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> str:
        with _persistence_guard("request_password_reset"):
            account = self.store.find_account_by_email(email)
            if account is None:
                raise UnknownEmail()
            token = self._reissue(account.id)

        self._send_password_reset(account, token)
        return "Check your email for instructions."

    def validate_reset_token(self, token: str) -> str:
        """Confirm a token is live without consuming it."""
        with _persistence_guard("validate_reset_token"):
            self._live_token(token)
        return "Valid token, set your new password."

    def reset_password(self, token: str, new_password: str) -> str:
        """Consume a reset token and store the new password hash."""
        with _persistence_guard("reset_password"):
            record = self._live_token(token)
            hashed = hash_password(new_password)
            try:
                self.store.reset_password_with_token(record.id, record.account_id, hashed)
            except TokenConsumed as exc:
                raise InvalidToken() from exc

        logger.info("Password reset for account %d", record.account_id)
        return "Password updated successfully."

    # ------------------------------------------------------------------
    # Authenticated account operations
    # ------------------------------------------------------------------

    def get_account(self, account_id: int) -> Account:
        with _persistence_guard("get_account"):
            return self._require_account(account_id)

    def change_password(self, account_id: int, current_password: str, new_password: str) -> str:
        with _persistence_guard("change_password"):
            account = self._require_account(account_id)
            if not verify_password(current_password, account.hashed_password):
                raise InvalidPassword("The current password is incorrect.")
            hashed = hash_password(new_password)
            if not self.store.update_password(account_id, hashed, expected_hash=account.hashed_password):
                # the password changed after it was verified
                raise InvalidPassword("The current password is incorrect.")

        logger.info("Password changed for account %d", account_id)
        return "Password updated successfully."

    def check_password(self, account_id: int, password: str) -> bool:
        """Verify a password without changing anything. Raises InvalidPassword on mismatch."""
        with _persistence_guard("check_password"):
            account = self._require_account(account_id)
        if not verify_password(password, account.hashed_password):
            raise InvalidPassword()
        return True

    def update_profile(self, account_id: int, name: str, email: str) -> str:
        """Change display name and email. Raises DuplicateEmail if another account owns the email."""
        with _persistence_guard("update_profile"):
            account = self._require_account(account_id)
            owner = self.store.find_account_by_email(email)
            if owner is not None and owner.id != account.id:
                raise DuplicateEmail()
            try:
                updated = self.store.update_profile_fields(account.id, name, email)
            except IntegrityError as exc:
                raise DuplicateEmail() from exc
            if not updated:
                raise UnknownAccount()

        return "Profile updated successfully."

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _account_lock(self, account_id: int) -> threading.Lock:
        """Fixed stripe of locks; two accounts may share one, an account never spans two."""
        return self._locks[account_id % len(self._locks)]

    def _reissue(self, account_id: int) -> VerificationToken:
        """Invalidate-then-issue as one critical section per account."""
        with self._account_lock(account_id):
            token = self.store.replace_token(account_id, new_verification_code())
        logger.info("Verification token reissued for account %d", account_id)
        return token

    def _live_token(self, value: str) -> VerificationToken:
        record = self.store.find_token_by_value(value) if value else None
        if record is None:
            raise InvalidToken()
        if record.is_expired(self.token_ttl_seconds):
            self.store.delete_token(record.id)
            raise InvalidToken("The token has expired, request a new one.")
        return record

    def _require_account(self, account_id: int) -> Account:
        account = self.store.find_account_by_id(account_id)
        if account is None:
            raise UnknownAccount()
        return account

    def _send_confirmation(self, account: Account, token: VerificationToken) -> None:
        try:
            self.mailer.send_confirmation(account.email, account.name, token.token)
        except Exception:
            logger.exception("Confirmation email for account %d could not be sent", account.id)

    def _send_password_reset(self, account: Account, token: VerificationToken) -> None:
        try:
            self.mailer.send_password_reset(account.email, account.name, token.token)
        except Exception:
            logger.exception("Password reset email for account %d could not be sent", account.id)
