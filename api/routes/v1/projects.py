"""
api/routes/v1/projects.py -- Project, task, team and note routes.

Routes:
  POST   /projects                                         -- create (caller becomes owner)
  GET    /projects                                         -- projects the caller owns or belongs to
  GET    /projects/{project_id}                            -- owner, member
  PUT    /projects/{project_id}                            -- owner
  DELETE /projects/{project_id}                            -- owner
  POST   /projects/{project_id}/tasks                      -- owner
  GET    /projects/{project_id}/tasks                      -- owner, member
  GET    /projects/{project_id}/tasks/{task_id}            -- owner, member
  PUT    /projects/{project_id}/tasks/{task_id}            -- owner
  DELETE /projects/{project_id}/tasks/{task_id}            -- owner
  POST   /projects/{project_id}/tasks/{task_id}/status     -- owner, member
  POST   /projects/{project_id}/team/find                  -- owner
  GET    /projects/{project_id}/team                       -- owner, member
  POST   /projects/{project_id}/team                       -- owner
  DELETE /projects/{project_id}/team/{member_id}           -- owner
  POST   /projects/{project_id}/tasks/{task_id}/notes      -- owner, member
  GET    /projects/{project_id}/tasks/{task_id}/notes      -- owner, member
  DELETE /projects/{project_id}/tasks/{task_id}/notes/{note_id} -- note author

Check order in every handler: project exists (404) -> task exists and belongs
to the project (404) -> projects.access.authorize() (403) -> mutation.
Anyone outside the owner/member sets gets 403 for every route here,
reads included.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import (
    MemberResponse,
    MessageResponse,
    NoteCreate,
    NoteResponse,
    ProjectCreate,
    ProjectResponse,
    TaskCreate,
    TaskResponse,
    TaskStatusUpdate,
    TeamAddRequest,
    TeamFindRequest,
)
from auth.dependencies import get_current_account
from auth.errors import NotFound, Unauthorized
from auth.models import Account
from auth.store import AccountStore
from projects.access import Action, authorize, resolve_role
from projects.models import Note, Project, Task
from projects.store import ProjectStore

# All project routes require authentication. The router-level dependency
# rejects the request before any handler runs; handlers that need the
# account declare it again (FastAPI caches it per request).
router = APIRouter(dependencies=[Depends(get_current_account)])


# ---------------------------------------------------------------------------
# Lookups (existence checks run before authorization)
# ---------------------------------------------------------------------------


def _store(request: Request) -> ProjectStore:
    return request.app.state.project_store


def _load_project(request: Request, project_id: int) -> Project:
    project = _store(request).find_project(project_id)
    if project is None:
        raise NotFound("Project not found.")
    return project


def _load_task(request: Request, project: Project, task_id: int) -> Task:
    task = _store(request).get_task(task_id)
    if task is None or task.project_id != project.id:
        raise NotFound("Task not found.")
    return task


def _project_response(project: Project, account_id: int) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        project_name=project.project_name,
        client_name=project.client_name,
        description=project.description,
        owner_id=project.owner_id,
        member_ids=project.member_ids,
        role=resolve_role(account_id, project).value,
        created_at=project.created_at,
    )


def _task_response(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        project_id=task.project_id,
        name=task.name,
        description=task.description,
        status=task.status,
        status_changed_by=task.status_changed_by,
        created_at=task.created_at,
    )


def _note_response(note: Note) -> NoteResponse:
    return NoteResponse(
        id=note.id,
        task_id=note.task_id,
        content=note.content,
        created_by=note.created_by,
        created_at=note.created_at,
    )


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    request: Request,
    body: ProjectCreate,
    account: Account = Depends(get_current_account),
) -> ProjectResponse:
    store = _store(request)
    project_id = store.create_project(
        Project(
            project_name=body.project_name,
            client_name=body.client_name,
            description=body.description,
            owner_id=account.id,
        )
    )
    return _project_response(store.find_project(project_id), account.id)


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(request: Request, account: Account = Depends(get_current_account)) -> list[ProjectResponse]:
    """Projects the caller owns or is a team member of."""
    projects = _store(request).list_projects_for_account(account.id)
    return [_project_response(p, account.id) for p in projects]


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    request: Request,
    project_id: int,
    account: Account = Depends(get_current_account),
) -> ProjectResponse:
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.READ)
    return _project_response(project, account.id)


@router.put("/projects/{project_id}", response_model=MessageResponse)
def update_project(
    request: Request,
    project_id: int,
    body: ProjectCreate,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.UPDATE_PROJECT)
    _store(request).update_project(
        project.id,
        project_name=body.project_name,
        client_name=body.client_name,
        description=body.description,
    )
    return MessageResponse(message="Project updated.")


@router.delete("/projects/{project_id}", response_model=MessageResponse)
def delete_project(
    request: Request,
    project_id: int,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.DELETE_PROJECT)
    _store(request).delete_project(project.id)
    return MessageResponse(message="Project deleted.")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    request: Request,
    project_id: int,
    body: TaskCreate,
    account: Account = Depends(get_current_account),
) -> TaskResponse:
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.CREATE_TASK)
    store = _store(request)
    task_id = store.create_task(Task(project_id=project.id, name=body.name, description=body.description))
    return _task_response(store.get_task(task_id))


@router.get("/projects/{project_id}/tasks", response_model=list[TaskResponse])
def list_tasks(
    request: Request,
    project_id: int,
    account: Account = Depends(get_current_account),
) -> list[TaskResponse]:
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.READ)
    return [_task_response(t) for t in _store(request).list_tasks(project.id)]


@router.get("/projects/{project_id}/tasks/{task_id}", response_model=TaskResponse)
def get_task(
    request: Request,
    project_id: int,
    task_id: int,
    account: Account = Depends(get_current_account),
) -> TaskResponse:
    project = _load_project(request, project_id)
    task = _load_task(request, project, task_id)
    authorize(account.id, project, Action.READ)
    return _task_response(task)


@router.put("/projects/{project_id}/tasks/{task_id}", response_model=MessageResponse)
def update_task(
    request: Request,
    project_id: int,
    task_id: int,
    body: TaskCreate,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    project = _load_project(request, project_id)
    task = _load_task(request, project, task_id)
    authorize(account.id, project, Action.UPDATE_TASK)
    _store(request).update_task(task.id, name=body.name, description=body.description)
    return MessageResponse(message="Task updated.")


@router.delete("/projects/{project_id}/tasks/{task_id}", response_model=MessageResponse)
def delete_task(
    request: Request,
    project_id: int,
    task_id: int,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    project = _load_project(request, project_id)
    task = _load_task(request, project, task_id)
    authorize(account.id, project, Action.DELETE_TASK)
    _store(request).delete_task(task.id)
    return MessageResponse(message="Task deleted.")


@router.post("/projects/{project_id}/tasks/{task_id}/status", response_model=MessageResponse)
def update_task_status(
    request: Request,
    project_id: int,
    task_id: int,
    body: TaskStatusUpdate,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    """Move a task between workflow states. Open to the owner and team members."""
    project = _load_project(request, project_id)
    task = _load_task(request, project, task_id)
    authorize(account.id, project, Action.UPDATE_TASK_STATUS)
    _store(request).update_task_status(task.id, body.status.value, changed_by=account.id)
    return MessageResponse(message="Task status updated.")


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/team/find", response_model=MemberResponse)
def find_member_by_email(
    request: Request,
    project_id: int,
    body: TeamFindRequest,
    account: Account = Depends(get_current_account),
) -> MemberResponse:
    """Look up an account by email so the owner can add it to the team."""
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.MANAGE_TEAM)
    accounts: AccountStore = request.app.state.account_store
    found = accounts.find_account_by_email(body.email)
    if found is None:
        raise NotFound("Account not found.")
    return MemberResponse(id=found.id, name=found.name, email=found.email)


@router.get("/projects/{project_id}/team", response_model=list[MemberResponse])
def list_team(
    request: Request,
    project_id: int,
    account: Account = Depends(get_current_account),
) -> list[MemberResponse]:
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.READ)
    accounts: AccountStore = request.app.state.account_store
    members = []
    for member_id in project.member_ids:
        member = accounts.find_account_by_id(member_id)
        if member is not None:
            members.append(MemberResponse(id=member.id, name=member.name, email=member.email))
    return members


@router.post("/projects/{project_id}/team", response_model=MessageResponse)
def add_member(
    request: Request,
    project_id: int,
    body: TeamAddRequest,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.MANAGE_TEAM)
    accounts: AccountStore = request.app.state.account_store
    if accounts.find_account_by_id(body.id) is None:
        raise NotFound("Account not found.")
    if body.id == project.owner_id or body.id in project.member_ids:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "The account is already part of this project."},
        )
    try:
        _store(request).add_member(project.id, body.id)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "The account is already part of this project."},
        ) from exc
    return MessageResponse(message="Member added.")


@router.delete("/projects/{project_id}/team/{member_id}", response_model=MessageResponse)
def remove_member(
    request: Request,
    project_id: int,
    member_id: int,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    project = _load_project(request, project_id)
    authorize(account.id, project, Action.MANAGE_TEAM)
    if member_id not in project.member_ids:
        raise NotFound("The account is not a member of this project.")
    _store(request).remove_member(project.id, member_id)
    return MessageResponse(message="Member removed.")


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/tasks/{task_id}/notes", response_model=NoteResponse, status_code=201)
def create_note(
    request: Request,
    project_id: int,
    task_id: int,
    body: NoteCreate,
    account: Account = Depends(get_current_account),
) -> NoteResponse:
    project = _load_project(request, project_id)
    task = _load_task(request, project, task_id)
    authorize(account.id, project, Action.CREATE_NOTE)
    store = _store(request)
    note_id = store.create_note(Note(task_id=task.id, content=body.content, created_by=account.id))
    return _note_response(store.get_note(note_id))


@router.get("/projects/{project_id}/tasks/{task_id}/notes", response_model=list[NoteResponse])
def list_notes(
    request: Request,
    project_id: int,
    task_id: int,
    account: Account = Depends(get_current_account),
) -> list[NoteResponse]:
    project = _load_project(request, project_id)
    task = _load_task(request, project, task_id)
    authorize(account.id, project, Action.READ)
    return [_note_response(n) for n in _store(request).list_notes(task.id)]


@router.delete("/projects/{project_id}/tasks/{task_id}/notes/{note_id}", status_code=204)
def delete_note(
    request: Request,
    project_id: int,
    task_id: int,
    note_id: int,
    account: Account = Depends(get_current_account),
) -> Response:
    """Delete a note. Only its author may do so, even the project owner may not."""
    project = _load_project(request, project_id)
    task = _load_task(request, project, task_id)
    store = _store(request)
    note = store.get_note(note_id)
    if note is None or note.task_id != task.id:
        raise NotFound("Note not found.")
    authorize(account.id, project, Action.DELETE_NOTE)
    if note.created_by != account.id:
        raise Unauthorized("Only the author can delete this note.")
    store.delete_note(note.id)
    return Response(status_code=204)
