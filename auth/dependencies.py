"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

One auth method: Authorization: Bearer <session credential>, as minted by
AccountLifecycle.login(). Verification is stateless (signature + expiry via
TokenIssuer); the embedded account id is then resolved through AccountStore so
a deleted account is rejected even while its credential is still unexpired.

get_current_account() is the dependency routers declare. It raises the typed
AuthError that explains the failure (InvalidSignature, Expired, UnknownAccount);
the error is rendered as 401 by the handler in api/main.py before any
route code runs.

Layer rule: no imports from projects/ or notify/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import InternalFailure, InvalidSignature, UnknownAccount
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import TokenIssuer

_BEARER_PREFIX = "Bearer "


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith(_BEARER_PREFIX):
        token = auth_header[len(_BEARER_PREFIX) :].strip()
        return token or None
    return None


def get_current_account(request: Request) -> Account:
    """Require authentication: resolve the bearer credential to an Account.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...

    On success the account is also attached as request.state.account for
    downstream handlers and middleware.

    Raises:
        InvalidSignature: no bearer credential, or it fails verification.
        Expired:          the credential's exp claim has passed.
        UnknownAccount:   the embedded id no longer matches an account.
        InternalFailure:  the account lookup itself failed.
    """
    token = _bearer_token(request)
    if token is None:
        raise InvalidSignature("Authentication required.")

    issuer: TokenIssuer = request.app.state.token_issuer
    account_store: AccountStore = request.app.state.account_store

    account_id = issuer.verify_session(token)
    try:
        account = account_store.find_account_by_id(account_id)
    except SQLAlchemyError as exc:
        raise InternalFailure() from exc
    if account is None:
        raise UnknownAccount()

    request.state.account = account
    return account

