"""
projects/models.py -- Domain dataclasses for projects, tasks, and notes.

These are pure data containers with zero logic. Persistence lives in
projects/store.py; who may do what lives in projects/access.py.

Only owner_id and member_ids matter for authorization. The remaining fields
are the payload the API echoes back.
"""

from dataclasses import dataclass, field
from typing import Optional

# Task workflow states, in board order.
TASK_STATUSES: tuple[str, ...] = ("pending", "on_hold", "in_progress", "under_review", "completed")


@dataclass
class Project:
    """A project owned by one account and shared with a team of members.

    The owner is never listed in member_ids. id is None before the record is
    written to the database.
    """

    project_name: str
    client_name: str
    description: str
    owner_id: int
    member_ids: list[int] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Task:
    """A unit of work inside a project.

    status_changed_by records the account that last moved the task between
    states (owner or member); None until the first status change.
    """

    project_id: int
    name: str
    description: str
    status: str = "pending"
    status_changed_by: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Note:
    """A comment on a task. Only its author may delete it."""

    task_id: int
    content: str
    created_by: int
    id: Optional[int] = None
    created_at: str = ""
