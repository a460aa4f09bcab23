"""
tests/test_project_routes.py -- Integration tests for project, task, team and note routes.

Every test builds its own owner / member / outsider trio through the signup
fixture, so tests do not depend on each other's state.

Coverage:
  - Unauthenticated access rejected before any handler runs
  - Owner: full CRUD on projects and tasks, team management
  - Member: reads, task status changes, own notes; 403 on owner-only actions
  - Outsider: 403 on every project route, reads included
  - 404 for missing projects/tasks/notes and cross-project task ids
"""

from __future__ import annotations

import pytest


def _headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def trio(api_client, signup):
    """Create owner, member and outsider accounts plus one project with one task.

    Returns a dict with the client, the three (id, email, token) tuples,
    project_id and task_id.
    """
    client, _ = api_client
    owner = signup("owner")
    member = signup("member")
    outsider = signup("outsider")

    resp = client.post(
        "/api/v1/projects",
        json={"project_name": "Website", "client_name": "ACME", "description": "Relaunch"},
        headers=_headers(owner[2]),
    )
    assert resp.status_code == 201, resp.text
    project_id = resp.json()["id"]

    resp = client.post(f"/api/v1/projects/{project_id}/team", json={"id": member[0]}, headers=_headers(owner[2]))
    assert resp.status_code == 200, resp.text

    resp = client.post(
        f"/api/v1/projects/{project_id}/tasks",
        json={"name": "Design", "description": "Mockups"},
        headers=_headers(owner[2]),
    )
    assert resp.status_code == 201, resp.text

    return {
        "client": client,
        "owner": owner,
        "member": member,
        "outsider": outsider,
        "project_id": project_id,
        "task_id": resp.json()["id"],
    }


class TestAuthRequired:
    def test_list_projects_unauthenticated(self, api_client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/projects")
        assert resp.status_code == 401

    def test_create_project_unauthenticated(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/projects", json={"project_name": "x", "client_name": "y", "description": "z"})
        assert resp.status_code == 401


class TestOwner:
    def test_created_project_lists_owner_role(self, trio) -> None:
        client, owner = trio["client"], trio["owner"]
        resp = client.get(f"/api/v1/projects/{trio['project_id']}", headers=_headers(owner[2]))
        assert resp.status_code == 200
        data = resp.json()
        assert data["owner_id"] == owner[0]
        assert data["role"] == "owner"
        assert data["member_ids"] == [trio["member"][0]]

    def test_update_and_delete_project(self, trio) -> None:
        client, token, pid = trio["client"], trio["owner"][2], trio["project_id"]
        resp = client.put(
            f"/api/v1/projects/{pid}",
            json={"project_name": "Shop", "client_name": "ACME", "description": "New scope"},
            headers=_headers(token),
        )
        assert resp.status_code == 200
        assert client.get(f"/api/v1/projects/{pid}", headers=_headers(token)).json()["project_name"] == "Shop"

        assert client.delete(f"/api/v1/projects/{pid}", headers=_headers(token)).status_code == 200
        assert client.get(f"/api/v1/projects/{pid}", headers=_headers(token)).status_code == 404

    def test_task_crud(self, trio) -> None:
        client, token, pid, tid = trio["client"], trio["owner"][2], trio["project_id"], trio["task_id"]
        base = f"/api/v1/projects/{pid}/tasks"
        assert [t["id"] for t in client.get(base, headers=_headers(token)).json()] == [tid]

        resp = client.put(f"{base}/{tid}", json={"name": "Design v2", "description": "More"}, headers=_headers(token))
        assert resp.status_code == 200
        task = client.get(f"{base}/{tid}", headers=_headers(token)).json()
        assert task["name"] == "Design v2"
        assert task["status"] == "pending"

        assert client.delete(f"{base}/{tid}", headers=_headers(token)).status_code == 200
        assert client.get(f"{base}/{tid}", headers=_headers(token)).status_code == 404

    def test_team_management(self, trio, signup) -> None:
        client, token, pid = trio["client"], trio["owner"][2], trio["project_id"]
        newcomer_id, newcomer_email, _ = signup("newcomer")

        found = client.post(f"/api/v1/projects/{pid}/team/find", json={"email": newcomer_email}, headers=_headers(token))
        assert found.status_code == 200
        assert found.json()["id"] == newcomer_id

        resp = client.post(f"/api/v1/projects/{pid}/team", json={"id": newcomer_id}, headers=_headers(token))
        assert resp.status_code == 200
        again = client.post(f"/api/v1/projects/{pid}/team", json={"id": newcomer_id}, headers=_headers(token))
        assert again.status_code == 409

        team = client.get(f"/api/v1/projects/{pid}/team", headers=_headers(token)).json()
        assert {m["id"] for m in team} == {trio["member"][0], newcomer_id}

        assert client.delete(f"/api/v1/projects/{pid}/team/{newcomer_id}", headers=_headers(token)).status_code == 200
        assert client.delete(f"/api/v1/projects/{pid}/team/{newcomer_id}", headers=_headers(token)).status_code == 404

    def test_cannot_add_owner_or_unknown_account(self, trio) -> None:
        client, owner, pid = trio["client"], trio["owner"], trio["project_id"]
        resp = client.post(f"/api/v1/projects/{pid}/team", json={"id": owner[0]}, headers=_headers(owner[2]))
        assert resp.status_code == 409
        resp = client.post(f"/api/v1/projects/{pid}/team", json={"id": 999_999}, headers=_headers(owner[2]))
        assert resp.status_code == 404

    def test_find_unknown_email(self, trio) -> None:
        client, token, pid = trio["client"], trio["owner"][2], trio["project_id"]
        resp = client.post(
            f"/api/v1/projects/{pid}/team/find", json={"email": "ghost@example.com"}, headers=_headers(token)
        )
        assert resp.status_code == 404


class TestMember:
    def test_member_can_read(self, trio) -> None:
        client, token, pid = trio["client"], trio["member"][2], trio["project_id"]
        resp = client.get(f"/api/v1/projects/{pid}", headers=_headers(token))
        assert resp.status_code == 200
        assert resp.json()["role"] == "member"
        listed = client.get("/api/v1/projects", headers=_headers(token)).json()
        assert pid in [p["id"] for p in listed]

    def test_member_cannot_delete_project(self, trio) -> None:
        client, pid = trio["client"], trio["project_id"]
        resp = client.delete(f"/api/v1/projects/{pid}", headers=_headers(trio["member"][2]))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "unauthorized"
        owner_view = client.get(f"/api/v1/projects/{pid}", headers=_headers(trio["owner"][2]))
        assert owner_view.status_code == 200

    def test_member_can_update_task_status(self, trio) -> None:
        client, member, pid, tid = trio["client"], trio["member"], trio["project_id"], trio["task_id"]
        resp = client.post(
            f"/api/v1/projects/{pid}/tasks/{tid}/status",
            json={"status": "in_progress"},
            headers=_headers(member[2]),
        )
        assert resp.status_code == 200
        task = client.get(f"/api/v1/projects/{pid}/tasks/{tid}", headers=_headers(member[2])).json()
        assert task["status"] == "in_progress"
        assert task["status_changed_by"] == member[0]

    def test_invalid_status_422(self, trio) -> None:
        client, pid, tid = trio["client"], trio["project_id"], trio["task_id"]
        resp = client.post(
            f"/api/v1/projects/{pid}/tasks/{tid}/status",
            json={"status": "done"},
            headers=_headers(trio["owner"][2]),
        )
        assert resp.status_code == 422

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("put", "", {"project_name": "x", "client_name": "y", "description": "z"}),
            ("post", "/tasks", {"name": "x", "description": "y"}),
            ("put", "/tasks/{tid}", {"name": "x", "description": "y"}),
            ("delete", "/tasks/{tid}", None),
            ("post", "/team", {"id": 1}),
            ("post", "/team/find", {"email": "a@example.com"}),
        ],
    )
    def test_member_denied_owner_actions(self, trio, method: str, path: str, body) -> None:
        client, pid = trio["client"], trio["project_id"]
        url = f"/api/v1/projects/{pid}" + path.format(tid=trio["task_id"])
        kwargs = {"headers": _headers(trio["member"][2])}
        if body is not None:
            kwargs["json"] = body
        resp = client.request(method.upper(), url, **kwargs)
        assert resp.status_code == 403

    def test_member_cannot_remove_teammates(self, trio) -> None:
        client, pid, member = trio["client"], trio["project_id"], trio["member"]
        resp = client.delete(f"/api/v1/projects/{pid}/team/{member[0]}", headers=_headers(member[2]))
        assert resp.status_code == 403


class TestNotes:
    def test_member_note_lifecycle(self, trio) -> None:
        client, member, pid, tid = trio["client"], trio["member"], trio["project_id"], trio["task_id"]
        base = f"/api/v1/projects/{pid}/tasks/{tid}/notes"

        resp = client.post(base, json={"content": "Started on this"}, headers=_headers(member[2]))
        assert resp.status_code == 201
        note = resp.json()
        assert note["created_by"] == member[0]

        notes = client.get(base, headers=_headers(trio["owner"][2])).json()
        assert [n["id"] for n in notes] == [note["id"]]

        # Only the author may delete, not even the owner.
        assert client.delete(f"{base}/{note['id']}", headers=_headers(trio["owner"][2])).status_code == 403
        assert client.delete(f"{base}/{note['id']}", headers=_headers(member[2])).status_code == 204
        assert client.delete(f"{base}/{note['id']}", headers=_headers(member[2])).status_code == 404

    def test_outsider_cannot_note(self, trio) -> None:
        client, pid, tid = trio["client"], trio["project_id"], trio["task_id"]
        resp = client.post(
            f"/api/v1/projects/{pid}/tasks/{tid}/notes",
            json={"content": "hi"},
            headers=_headers(trio["outsider"][2]),
        )
        assert resp.status_code == 403


class TestOutsider:
    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("get", "", None),
            ("put", "", {"project_name": "x", "client_name": "y", "description": "z"}),
            ("delete", "", None),
            ("get", "/tasks", None),
            ("post", "/tasks", {"name": "x", "description": "y"}),
            ("get", "/tasks/{tid}", None),
            ("post", "/tasks/{tid}/status", {"status": "completed"}),
            ("get", "/team", None),
            ("get", "/tasks/{tid}/notes", None),
        ],
    )
    def test_outsider_denied_everywhere(self, trio, method: str, path: str, body) -> None:
        client, pid = trio["client"], trio["project_id"]
        url = f"/api/v1/projects/{pid}" + path.format(tid=trio["task_id"])
        kwargs = {"headers": _headers(trio["outsider"][2])}
        if body is not None:
            kwargs["json"] = body
        resp = client.request(method.upper(), url, **kwargs)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_outsider_project_list_is_empty(self, trio) -> None:
        client = trio["client"]
        listed = client.get("/api/v1/projects", headers=_headers(trio["outsider"][2])).json()
        assert trio["project_id"] not in [p["id"] for p in listed]

    def test_denied_status_change_has_no_effect(self, trio) -> None:
        client, pid, tid = trio["client"], trio["project_id"], trio["task_id"]
        client.post(
            f"/api/v1/projects/{pid}/tasks/{tid}/status",
            json={"status": "completed"},
            headers=_headers(trio["outsider"][2]),
        )
        task = client.get(f"/api/v1/projects/{pid}/tasks/{tid}", headers=_headers(trio["owner"][2])).json()
        assert task["status"] == "pending"


class TestNotFound:
    def test_missing_project(self, trio) -> None:
        client = trio["client"]
        assert client.get("/api/v1/projects/999999", headers=_headers(trio["owner"][2])).status_code == 404

    def test_missing_project_checked_before_role(self, trio) -> None:
        client = trio["client"]
        assert client.delete("/api/v1/projects/999999", headers=_headers(trio["outsider"][2])).status_code == 404

    def test_task_from_other_project(self, trio) -> None:
        client, owner = trio["client"], trio["owner"]
        other = client.post(
            "/api/v1/projects",
            json={"project_name": "Other", "client_name": "ACME", "description": "Second"},
            headers=_headers(owner[2]),
        ).json()["id"]
        resp = client.get(f"/api/v1/projects/{other}/tasks/{trio['task_id']}", headers=_headers(owner[2]))
        assert resp.status_code == 404
