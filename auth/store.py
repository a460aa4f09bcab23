"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

Pattern: Repository + Data Mapper (same as projects/store.py).
AccountStore is the repository; _row_to_account / _row_to_token are the
mappers. Lifecycle and dependency code never touches SQL directly.

Atomicity:
  Every operation that writes an Account and a VerificationToken together
  runs inside a single engine.begin() block -- both rows commit or neither
  does. replace_token() is the delete-existing-and-insert primitive the
  lifecycle manager calls inside its per-account lock.

  UNIQUE(account_id) on verification_tokens is the storage-level backstop for
  the one-outstanding-token-per-account rule: even a caller that bypasses the
  lifecycle lock cannot leave two live tokens behind.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are stored normalized (stripped, lower-case) so uniqueness is
  case-insensitive without a functional index.

Layer rule: no imports from api/, projects/, or notify/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import Account, VerificationToken, normalize_email

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'taskboard.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # normalized
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("confirmed", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_tokens = Table(
    "verification_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("account_id", Integer, nullable=False, unique=True),  # one live token per account
    Column("created_at", String(32), nullable=False),
)


class TokenConsumed(Exception):
    """The token row vanished between lookup and consumption.

    Raised inside the consuming transaction so nothing is written; the
    lifecycle manager reports it to the caller as InvalidToken.
    """


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and VerificationToken entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account, token = store.create_account_with_token(Account(...), "c0ffee...")
        store.confirm_with_token(token.id, account.id)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, timeout: float = 10.0) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            # busy timeout: a locked database fails after `timeout` seconds
            connect_args["timeout"] = timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def find_account_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_account_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_profile_fields(self, account_id: int, name: str, email: str) -> bool:
        """Write name and email only; the password hash and confirmation are untouched.

        Raises sqlalchemy.exc.IntegrityError if the email belongs to another
        account. Returns False if account_id was not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(name=name, email=normalize_email(email))
            )
        return result.rowcount > 0

    def update_password(self, account_id: int, hashed_password: str, expected_hash: str | None = None) -> bool:
        """Store a new password hash.

        With expected_hash, the write only applies while the stored hash still
        equals it, so a password set by someone else in the meantime is never
        overwritten. Returns False when no row was updated.
        """
        condition = _accounts.c.id == account_id
        if expected_hash is not None:
            condition = condition & (_accounts.c.hashed_password == expected_hash)
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.update().where(condition).values(hashed_password=hashed_password))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Token queries
    # ------------------------------------------------------------------

    def find_token_by_value(self, token: str) -> VerificationToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.token == token)).fetchone()
        return _row_to_token(row) if row is not None else None

    def find_token_by_account(self, account_id: int) -> VerificationToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.account_id == account_id)).fetchone()
        return _row_to_token(row) if row is not None else None

    def save_token(self, token: VerificationToken) -> int:
        """Insert a token and return its ID.

        Raises IntegrityError if the account already holds a token -- use
        replace_token() to supersede one.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _tokens.insert().values(
                    token=token.token,
                    account_id=token.account_id,
                    created_at=token.created_at or _now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def delete_token(self, token_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.id == token_id))
        return result.rowcount > 0

    def count_tokens(self, account_id: int) -> int:
        with self.engine.connect() as conn:
            return conn.execute(
                text("SELECT COUNT(*) FROM verification_tokens WHERE account_id = :aid"),
                {"aid": account_id},
            ).scalar() or 0

    # ------------------------------------------------------------------
    # Atomic multi-row operations
    # ------------------------------------------------------------------

    def create_account_with_token(self, account: Account, token_value: str) -> tuple[Account, VerificationToken]:
        """Insert an unconfirmed account and its first token in one transaction.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken;
        nothing is written in that case.
        """
        created_at = _now_iso()
        email = normalize_email(account.email)
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    email=email,
                    name=account.name,
                    hashed_password=account.hashed_password,
                    confirmed=0,
                    created_at=created_at,
                )
            )
            account_id = result.inserted_primary_key[0]
            result = conn.execute(
                _tokens.insert().values(token=token_value, account_id=account_id, created_at=created_at)
            )
            token_id = result.inserted_primary_key[0]

        saved = Account(
            id=account_id,
            email=email,
            name=account.name,
            hashed_password=account.hashed_password,
            confirmed=False,
            created_at=created_at,
        )
        return saved, VerificationToken(id=token_id, token=token_value, account_id=account_id, created_at=created_at)

    def replace_token(self, account_id: int, token_value: str) -> VerificationToken:
        """Delete any existing token for the account and insert a new one, atomically."""
        created_at = _now_iso()
        with self.engine.begin() as conn:
            conn.execute(_tokens.delete().where(_tokens.c.account_id == account_id))
            result = conn.execute(
                _tokens.insert().values(token=token_value, account_id=account_id, created_at=created_at)
            )
        return VerificationToken(
            id=result.inserted_primary_key[0],
            token=token_value,
            account_id=account_id,
            created_at=created_at,
        )

    def confirm_with_token(self, token_id: int, account_id: int) -> None:
        """Consume the token and mark the account confirmed, atomically.

        The token delete runs first and doubles as the consumption guard: if
        another request already consumed it, TokenConsumed is raised and the
        transaction rolls back without touching the account.
        """
        with self.engine.begin() as conn:
            deleted = conn.execute(
                _tokens.delete().where((_tokens.c.id == token_id) & (_tokens.c.account_id == account_id))
            )
            if deleted.rowcount == 0:
                raise TokenConsumed(token_id)
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(confirmed=1))

    def reset_password_with_token(self, token_id: int, account_id: int, hashed_password: str) -> None:
        """Consume the token and store the new password hash, atomically."""
        with self.engine.begin() as conn:
            deleted = conn.execute(
                _tokens.delete().where((_tokens.c.id == token_id) & (_tokens.c.account_id == account_id))
            )
            if deleted.rowcount == 0:
                raise TokenConsumed(token_id)
            conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(hashed_password=hashed_password)
            )

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        confirmed=bool(row.confirmed),
        created_at=row.created_at,
    )


def _row_to_token(row) -> VerificationToken:
    return VerificationToken(
        id=row.id,
        token=row.token,
        account_id=row.account_id,
        created_at=row.created_at,
    )
