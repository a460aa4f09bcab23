"""
projects/access.py -- Project authorization resolver.

Every project-scoped request resolves the caller to exactly one Role:

    OWNER         account id == project.owner_id
    MEMBER        account id in project.member_ids
    UNAUTHORIZED  neither

and each route names the Action it is about to perform. is_permitted() is the
single permission table; routes never compare ids themselves.

Ordering contract for callers: load the project (and task) first and 404 if
missing, then authorize(), then mutate. An Unauthorized raised here means no
write has happened yet.

Note deletion has one extra rule on top of the table: a member may only delete
notes they wrote (checked by the route with the note in hand).
"""

from __future__ import annotations

import enum
import logging

from auth.errors import Unauthorized
from projects.models import Project

logger = logging.getLogger("taskboard.projects")


class Role(str, enum.Enum):
    OWNER = "owner"
    MEMBER = "member"
    UNAUTHORIZED = "unauthorized"


class Action(str, enum.Enum):
    READ = "read"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"
    UPDATE_TASK_STATUS = "update_task_status"
    MANAGE_TEAM = "manage_team"
    CREATE_NOTE = "create_note"
    DELETE_NOTE = "delete_note"


_MEMBER_ACTIONS = frozenset(
    {
        Action.READ,
        Action.UPDATE_TASK_STATUS,
        Action.CREATE_NOTE,
        Action.DELETE_NOTE,
    }
)


def resolve_role(account_id: int, project: Project) -> Role:
    if account_id == project.owner_id:
        return Role.OWNER
    if account_id in project.member_ids:
        return Role.MEMBER
    return Role.UNAUTHORIZED


def is_permitted(role: Role, action: Action) -> bool:
    if role is Role.OWNER:
        return True
    if role is Role.MEMBER:
        return action in _MEMBER_ACTIONS
    return False


def authorize(account_id: int, project: Project, action: Action) -> Role:
    """Return the caller's role, or raise Unauthorized if it does not permit action."""
    role = resolve_role(account_id, project)
    if not is_permitted(role, action):
        logger.info(
            "Denied %s on project %s for account %s (role=%s)",
            action.value,
            project.id,
            account_id,
            role.value,
        )
        raise Unauthorized()
    return role
