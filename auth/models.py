"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, almost no logic). Stores map rows
into these; the lifecycle manager does the work.

Layer rule: no imports from api/, projects/, or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup (case-insensitive uniqueness)."""
    return email.strip().lower()


@dataclass
class Account:
    """A registered identity.

    confirmed starts False and flips to True exactly once, through a valid
    confirmation token. Password changes never revert it.

    hashed_password is a bcrypt hash and must never leave the service layer
    (response models in api/models.py omit it).
    """

    email: str
    name: str
    hashed_password: str
    confirmed: bool = False
    id: int | None = None
    created_at: str | None = None


@dataclass
class VerificationToken:
    """Single-use code bound to exactly one account.

    Purpose-agnostic: the same record type serves confirmation and password
    reset. At most one exists per account (UNIQUE(account_id) in the store).
    """

    token: str
    account_id: int
    created_at: str  # ISO 8601 UTC
    id: int | None = None

    def is_expired(self, ttl_seconds: int, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        created = datetime.fromisoformat(self.created_at)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return now - created > timedelta(seconds=ttl_seconds)
