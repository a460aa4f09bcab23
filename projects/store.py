"""
projects/store.py -- SQLAlchemy-backed persistence for projects, teams, tasks, notes.

Uses SQLAlchemy Core (not ORM) so the dataclasses in projects/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. ProjectStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

find_project() is the lookup the authorization resolver consumes: it returns
the project with its owner_id and member_ids already loaded.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ProjectStore()                                 # SQLite default
    project_id = store.create_project(Project(...))
    store.add_member(project_id, account_id)
    project = store.find_project(project_id)
    store.close()
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from projects.models import TASK_STATUSES, Note, Project, Task

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'taskboard.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_name", String(255), nullable=False),
    Column("client_name", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("owner_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_members = Table(
    "project_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, nullable=False),
    Column("account_id", Integer, nullable=False),
    UniqueConstraint("project_id", "account_id", name="uq_project_member"),
)

_tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, nullable=False),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("status", String(30), nullable=False, server_default="pending"),
    Column("status_changed_by", Integer),
    Column("created_at", String(32), nullable=False),
)

_notes = Table(
    "notes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("task_id", Integer, nullable=False),
    Column("content", Text, nullable=False),
    Column("created_by", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode (set per-connection; PRAGMAs are not pooled)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ProjectStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL, timeout: float = 10.0) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync routes in a thread pool, so the same pooled
            # connection may be used from several threads.
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> int:
        """Insert a new project (and any initial members) and return its ID."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _projects.insert().values(
                    project_name=project.project_name,
                    client_name=project.client_name,
                    description=project.description,
                    owner_id=project.owner_id,
                    created_at=_now_iso(),
                )
            )
            project_id = result.inserted_primary_key[0]
            for account_id in project.member_ids:
                conn.execute(_members.insert().values(project_id=project_id, account_id=account_id))
        return project_id

    def find_project(self, project_id: int) -> Optional[Project]:
        """Fetch a project with its member ids. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.id == project_id)).fetchone()
            if row is None:
                return None
            member_ids = self._member_ids(conn, [project_id]).get(project_id, [])
        return _row_to_project(row, member_ids)

    def list_projects_for_account(self, account_id: int) -> list[Project]:
        """Return every project the account owns or belongs to, oldest first."""
        member_of = select(_members.c.project_id).where(_members.c.account_id == account_id)
        with self.engine.connect() as conn:
            rows = conn.execute(
                _projects.select()
                .where(or_(_projects.c.owner_id == account_id, _projects.c.id.in_(member_of)))
                .order_by(_projects.c.id)
            ).fetchall()
            members = self._member_ids(conn, [r.id for r in rows])
        return [_row_to_project(r, members.get(r.id, [])) for r in rows]

    def update_project(self, project_id: int, **fields) -> bool:
        """Update project_name, client_name and/or description.

        Returns True if a row was updated, False if project_id was not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_projects.update().where(_projects.c.id == project_id).values(**fields))
        return result.rowcount > 0

    def delete_project(self, project_id: int) -> bool:
        """Delete a project with its tasks, notes and memberships in one transaction."""
        task_ids = select(_tasks.c.id).where(_tasks.c.project_id == project_id)
        with self.engine.begin() as conn:
            conn.execute(_notes.delete().where(_notes.c.task_id.in_(task_ids)))
            conn.execute(_tasks.delete().where(_tasks.c.project_id == project_id))
            conn.execute(_members.delete().where(_members.c.project_id == project_id))
            result = conn.execute(_projects.delete().where(_projects.c.id == project_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Team membership
    # ------------------------------------------------------------------

    def add_member(self, project_id: int, account_id: int) -> None:
        """Add an account to the project team.

        Raises sqlalchemy.exc.IntegrityError if the account is already a
        member -- caller should check project.member_ids first and treat the
        error as a lost race.
        """
        with self.engine.begin() as conn:
            conn.execute(_members.insert().values(project_id=project_id, account_id=account_id))

    def remove_member(self, project_id: int, account_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _members.delete().where((_members.c.project_id == project_id) & (_members.c.account_id == account_id))
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(self, task: Task) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                _tasks.insert().values(
                    project_id=task.project_id,
                    name=task.name,
                    description=task.description,
                    status=task.status,
                    created_at=_now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def get_task(self, task_id: int) -> Optional[Task]:
        with self.engine.connect() as conn:
            row = conn.execute(_tasks.select().where(_tasks.c.id == task_id)).fetchone()
        return _row_to_task(row) if row is not None else None

    def list_tasks(self, project_id: int) -> list[Task]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tasks.select().where(_tasks.c.project_id == project_id).order_by(_tasks.c.id)
            ).fetchall()
        return [_row_to_task(r) for r in rows]

    def update_task(self, task_id: int, **fields) -> bool:
        """Update name and/or description. Status has its own method."""
        with self.engine.begin() as conn:
            result = conn.execute(_tasks.update().where(_tasks.c.id == task_id).values(**fields))
        return result.rowcount > 0

    def update_task_status(self, task_id: int, status: str, changed_by: int) -> bool:
        """Set the workflow status and record who changed it."""
        if status not in TASK_STATUSES:
            raise ValueError(f"Unknown task status: {status!r}")
        with self.engine.begin() as conn:
            result = conn.execute(
                _tasks.update().where(_tasks.c.id == task_id).values(status=status, status_changed_by=changed_by)
            )
        return result.rowcount > 0

    def delete_task(self, task_id: int) -> bool:
        """Delete a task and its notes in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(_notes.delete().where(_notes.c.task_id == task_id))
            result = conn.execute(_tasks.delete().where(_tasks.c.id == task_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def create_note(self, note: Note) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                _notes.insert().values(
                    task_id=note.task_id,
                    content=note.content,
                    created_by=note.created_by,
                    created_at=_now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def get_note(self, note_id: int) -> Optional[Note]:
        with self.engine.connect() as conn:
            row = conn.execute(_notes.select().where(_notes.c.id == note_id)).fetchone()
        return _row_to_note(row) if row is not None else None

    def list_notes(self, task_id: int) -> list[Note]:
        with self.engine.connect() as conn:
            rows = conn.execute(_notes.select().where(_notes.c.task_id == task_id).order_by(_notes.c.id)).fetchall()
        return [_row_to_note(r) for r in rows]

    def delete_note(self, note_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_notes.delete().where(_notes.c.id == note_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _member_ids(conn, project_ids: list[int]) -> dict[int, list[int]]:
        if not project_ids:
            return {}
        rows = conn.execute(
            select(_members.c.project_id, _members.c.account_id)
            .where(_members.c.project_id.in_(project_ids))
            .order_by(_members.c.id)
        ).fetchall()
        result: dict[int, list[int]] = {}
        for project_id, account_id in rows:
            result.setdefault(project_id, []).append(account_id)
        return result


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_project(row, member_ids: list[int]) -> Project:
    return Project(
        id=row.id,
        project_name=row.project_name,
        client_name=row.client_name,
        description=row.description,
        owner_id=row.owner_id,
        member_ids=list(member_ids),
        created_at=row.created_at,
    )


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        description=row.description,
        status=row.status,
        status_changed_by=row.status_changed_by,
        created_at=row.created_at,
    )


def _row_to_note(row) -> Note:
    return Note(
        id=row.id,
        task_id=row.task_id,
        content=row.content,
        created_by=row.created_by,
        created_at=row.created_at,
    )
