"""
auth/tokens.py -- Password hashing, verification codes, and session credentials.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Bcrypt's cost factor makes
       brute-force expensive and gensalt() gives every hash a fresh salt. The
       _DUMMY_HASH constant lets login() run bcrypt even when the email is
       unknown, so response time does not reveal which emails exist [C1].

  Verification codes: secrets.token_hex(16) -- 32 hex chars, 128 bits of
       entropy, fixed width. Uniqueness per account is enforced by the store
       (UNIQUE(account_id)); collisions across accounts are infeasible at
       this entropy and the UNIQUE(token) index catches them anyway.

  Sessions: python-jose HS256. TokenIssuer is constructed with the secret and
       an explicit, positive lifetime; there is no module-level secret. The
       only identity claim is "id" (the account id). Verification raises
       Expired or InvalidSignature -- the dependency layer turns both into 401.

Layer rule: no imports from api/, projects/, or notify/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import Expired, InvalidSignature

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("taskboard.auth")

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes of its input. The API layer rejects
# longer passwords so two distinct passwords can never share a hash.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError for inputs longer than MAX_PASSWORD_BYTES rather than
    letting bcrypt truncate them.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: a malformed hash, a None, or an oversized input all verify
    as False. bcrypt.checkpw compares in constant time.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except Exception:
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("taskboard_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run one bcrypt verification against a dummy hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Verification codes
# ---------------------------------------------------------------------------


def new_verification_code() -> str:
    """Return a fresh 32-character hex code (128 bits of entropy)."""
    return secrets.token_hex(16)


# ---------------------------------------------------------------------------
# Session credentials
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints and verifies signed session credentials.

    Usage:
        issuer = TokenIssuer(secret_key=settings.secret_key, expire_seconds=3600)
        token = issuer.issue_session(account.id)
        account_id = issuer.verify_session(token)   # raises Expired / InvalidSignature
    """

    def __init__(self, secret_key: str, expire_seconds: int, algorithm: str = _ALGORITHM) -> None:
        if not secret_key:
            raise ValueError("TokenIssuer requires a signing secret.")
        if expire_seconds <= 0:
            raise ValueError("Session credentials must have a positive expiry.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenIssuer:
        return cls(secret_key=settings.secret_key, expire_seconds=settings.session_expire_seconds)

    def issue_session(self, account_id: int) -> str:
        """Encode a JWT carrying the account id, issued-at, and expiry."""
        now = datetime.now(timezone.utc)
        payload = {
            "id": account_id,
            "iat": now,
            "exp": now + timedelta(seconds=self.expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def verify_session(self, token: str) -> int:
        """Return the account id embedded in a valid credential.

        Raises:
            Expired:          signature is good but exp is in the past.
            InvalidSignature: anything else -- bad signature, malformed token,
                              unexpected algorithm, or missing/invalid id claim.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"require_exp": True},
            )
        except ExpiredSignatureError as exc:
            raise Expired() from exc
        except JWTError as exc:
            raise InvalidSignature() from exc

        account_id = payload.get("id")
        # bool is an int subclass; a True "id" is not an account id
        if not isinstance(account_id, int) or isinstance(account_id, bool):
            raise InvalidSignature()
        return account_id
