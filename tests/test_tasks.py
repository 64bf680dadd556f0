"""
Task endpoint tests
"""
import pytest
from httpx import AsyncClient

from taskflow.db import crud


async def create_task(client: AsyncClient, project, headers, **payload):
    payload.setdefault("title", "Task")
    response = await client.post(f"/api/v1/projects/{project.uuid}/tasks", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestTaskAccess:

    async def test_requires_token(self, client: AsyncClient, project):
        response = await client.get(f"/api/v1/projects/{project.uuid}/tasks")
        assert response.status_code == 401
        assert response.headers.get("www-authenticate") == "Bearer"

    async def test_invalid_token(self, client: AsyncClient, project):
        response = await client.get(
            f"/api/v1/projects/{project.uuid}/tasks",
            headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    async def test_outsider_cannot_read_board(self, client: AsyncClient, project, outsider_headers):
        response = await client.get(f"/api/v1/projects/{project.uuid}/tasks", headers=outsider_headers)
        assert response.status_code == 403

    async def test_outsider_cannot_touch_task(self, client: AsyncClient, project, owner_headers, outsider_headers):
        task = await create_task(client, project, owner_headers)
        response = await client.patch(
            f"/api/v1/tasks/{task['id']}/status", json={"status": "Done"}, headers=outsider_headers
        )
        assert response.status_code == 403

    async def test_unknown_task(self, client: AsyncClient, owner, owner_headers):
        response = await client.get(
            "/api/v1/tasks/0b7f5a0e-0d7c-4f36-8f0e-2a0d5b8e9c11", headers=owner_headers
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Task not found"


class TestTaskCreation:

    async def test_create_task(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers, title="Write copy", priority="High")

        assert task["status"] == "To Do"
        assert task["position"] == 3000.0
        assert task["timer_status"] == "idle"
        assert task["total_time_spent"] == 0
        assert task["creator_id"] == "user-1"
        assert task["project_id"] == str(project.uuid)

    async def test_subtask_updates_parent(self, client: AsyncClient, project, owner_headers):
        parent = await create_task(client, project, owner_headers, title="Epic", type="big")
        await create_task(
            client, project, owner_headers, title="Piece", parent_id=parent["id"], status="In Progress"
        )

        response = await client.get(f"/api/v1/tasks/{parent['id']}", headers=owner_headers)
        data = response.json()
        assert data["status"] == "In Progress"
        assert data["subtask_count"] == 1
        assert data["subtasks_done"] == 0

    async def test_small_task_cannot_own_subtasks(self, client: AsyncClient, project, owner_headers):
        parent = await create_task(client, project, owner_headers, title="Small")
        response = await client.post(
            f"/api/v1/projects/{project.uuid}/tasks",
            json={"title": "Child", "parent_id": parent["id"]},
            headers=owner_headers
        )
        assert response.status_code == 400

    async def test_assignee_must_be_member(self, client: AsyncClient, project, owner_headers):
        response = await client.post(
            f"/api/v1/projects/{project.uuid}/tasks",
            json={"title": "Delegate", "assignee_id": "stranger"},
            headers=owner_headers
        )
        assert response.status_code == 400

    async def test_blank_title_rejected(self, client: AsyncClient, project, owner_headers):
        response = await client.post(
            f"/api/v1/projects/{project.uuid}/tasks", json={"title": ""}, headers=owner_headers
        )
        assert response.status_code == 422


class TestBoard:

    async def test_board_order_and_filters(self, client: AsyncClient, project, owner_headers):
        low = await create_task(client, project, owner_headers, title="Low", priority="Low")
        urgent = await create_task(client, project, owner_headers, title="Urgent", priority="Urgent")
        done = await create_task(client, project, owner_headers, title="Shipped", status="Done")

        board = await client.get(f"/api/v1/projects/{project.uuid}/tasks", headers=owner_headers)
        assert [t["id"] for t in board.json()] == [urgent["id"], done["id"], low["id"]]

        filtered = await client.get(
            f"/api/v1/projects/{project.uuid}/tasks", params={"status": "Done"}, headers=owner_headers
        )
        assert [t["id"] for t in filtered.json()] == [done["id"]]

        unassigned = await client.get(
            f"/api/v1/projects/{project.uuid}/tasks", params={"assignee_id": ""}, headers=owner_headers
        )
        assert len(unassigned.json()) == 3

    async def test_subtask_filter(self, client: AsyncClient, project, owner_headers):
        parent = await create_task(client, project, owner_headers, title="Epic", type="big")
        child = await create_task(client, project, owner_headers, title="Piece", parent_id=parent["id"])
        await create_task(client, project, owner_headers, title="Other")

        response = await client.get(
            f"/api/v1/projects/{project.uuid}/tasks", params={"parent_id": parent["id"]}, headers=owner_headers
        )
        assert [t["id"] for t in response.json()] == [child["id"]]

    async def test_stats(self, client: AsyncClient, project, owner_headers):
        await create_task(client, project, owner_headers, title="One")
        await create_task(client, project, owner_headers, title="Two", status="Done")

        response = await client.get(f"/api/v1/projects/{project.uuid}/tasks/stats", headers=owner_headers)
        assert response.status_code == 200
        stats = response.json()
        assert stats["total"] == 2
        assert stats["done"] == 1
        assert stats["completion_percentage"] == 50.0

    async def test_drop_between_neighbours(self, client: AsyncClient, project, owner_headers):
        high = await create_task(client, project, owner_headers, title="High", priority="High")
        low = await create_task(client, project, owner_headers, title="Low", priority="Low")
        mover = await create_task(client, project, owner_headers, title="Mover", priority="Urgent")

        response = await client.patch(
            f"/api/v1/tasks/{mover['id']}/position",
            json={"above_id": high["id"], "below_id": low["id"]},
            headers=owner_headers
        )
        assert response.status_code == 200
        assert response.json()["position"] == 2000.0

    async def test_move_to_column_cascades(self, client: AsyncClient, project, owner_headers):
        parent = await create_task(client, project, owner_headers, title="Epic", type="big")
        child = await create_task(client, project, owner_headers, title="Piece", parent_id=parent["id"])

        response = await client.patch(
            f"/api/v1/tasks/{parent['id']}/position",
            json={"position": 9000, "status": "Done"},
            headers=owner_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "Done"
        assert response.json()["subtasks_done"] == 1

        child_view = await client.get(f"/api/v1/tasks/{child['id']}", headers=owner_headers)
        assert child_view.json()["status"] == "Done"


class TestStatusAndTimer:

    async def test_status_drives_timer(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers)

        started = await client.patch(
            f"/api/v1/tasks/{task['id']}/status", json={"status": "In Progress"}, headers=owner_headers
        )
        assert started.status_code == 200
        assert started.json()["timer_status"] == "working"
        assert started.json()["timer_started_at"] is not None

        paused = await client.patch(
            f"/api/v1/tasks/{task['id']}/status", json={"status": "Break"}, headers=owner_headers
        )
        assert paused.json()["timer_status"] == "break"

        finished = await client.patch(
            f"/api/v1/tasks/{task['id']}/status", json={"status": "Done"}, headers=owner_headers
        )
        assert finished.json()["timer_status"] == "idle"
        assert finished.json()["timer_started_at"] is None
        assert finished.json()["total_time_spent"] >= 0

    async def test_unknown_status_rejected(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers)
        response = await client.patch(
            f"/api/v1/tasks/{task['id']}/status", json={"status": "Archived"}, headers=owner_headers
        )
        assert response.status_code == 422

    async def test_timer_endpoints(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers)

        started = await client.post(
            f"/api/v1/tasks/{task['id']}/timer/start", json={"mode": "working"}, headers=owner_headers
        )
        assert started.status_code == 200
        assert started.json()["timer_status"] == "working"
        assert started.json()["status"] == "To Do"

        stopped = await client.post(f"/api/v1/tasks/{task['id']}/timer/stop", headers=owner_headers)
        assert stopped.status_code == 200
        assert stopped.json()["timer_status"] == "idle"

    @pytest.mark.parametrize("mode", ["idle", "running"])
    async def test_timer_mode_validated(self, client: AsyncClient, project, owner_headers, mode):
        task = await create_task(client, project, owner_headers)
        response = await client.post(
            f"/api/v1/tasks/{task['id']}/timer/start", json={"mode": mode}, headers=owner_headers
        )
        assert response.status_code == 422


class TestTaskEditing:

    async def test_update_and_assign(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers)

        updated = await client.put(
            f"/api/v1/tasks/{task['id']}",
            json={"title": "Renamed", "description": "Now with details"},
            headers=owner_headers
        )
        assert updated.status_code == 200
        assert updated.json()["title"] == "Renamed"

        assigned = await client.patch(
            f"/api/v1/tasks/{task['id']}/assignee", json={"assignee_id": "user-1"}, headers=owner_headers
        )
        assert assigned.status_code == 200
        assert assigned.json()["assignee"]["id"] == "user-1"

        cleared = await client.patch(
            f"/api/v1/tasks/{task['id']}/assignee", json={"assignee_id": None}, headers=owner_headers
        )
        assert cleared.json()["assignee"] is None

    async def test_assign_outsider_rejected(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers)
        response = await client.patch(
            f"/api/v1/tasks/{task['id']}/assignee", json={"assignee_id": "user-2"}, headers=owner_headers
        )
        assert response.status_code == 400

    async def test_delete(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers)

        response = await client.delete(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        assert response.status_code == 204

        missing = await client.get(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        assert missing.status_code == 404


class TestDependencies:

    async def test_dependency_lifecycle(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers, title="Deploy")
        blocker = await create_task(client, project, owner_headers, title="Migrate")

        added = await client.post(
            f"/api/v1/tasks/{task['id']}/dependencies",
            json={"blocked_by_id": blocker["id"]},
            headers=owner_headers
        )
        assert added.status_code == 201
        assert added.json()["status"] == "Blocked"

        detail = await client.get(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        assert [t["id"] for t in detail.json()["blocked_by"]] == [blocker["id"]]

        blocker_detail = await client.get(f"/api/v1/tasks/{blocker['id']}", headers=owner_headers)
        assert [t["id"] for t in blocker_detail.json()["blocking"]] == [task["id"]]

        removed = await client.delete(
            f"/api/v1/tasks/{task['id']}/dependencies/{blocker['id']}", headers=owner_headers
        )
        assert removed.status_code == 204

        again = await client.delete(
            f"/api/v1/tasks/{task['id']}/dependencies/{blocker['id']}", headers=owner_headers
        )
        assert again.status_code == 404

        after = await client.get(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        assert after.json()["status"] == "Blocked"
        assert after.json()["blocked_by"] == []

    async def test_self_dependency_rejected(self, client: AsyncClient, project, owner_headers):
        task = await create_task(client, project, owner_headers)
        response = await client.post(
            f"/api/v1/tasks/{task['id']}/dependencies",
            json={"blocked_by_id": task["id"]},
            headers=owner_headers
        )
        assert response.status_code == 400


class TestVanishedTask:

    @pytest.mark.parametrize("operation, method, path, body", [
        ("set_task_status", "patch", "/status", {"status": "Done"}),
        ("assign_task", "patch", "/assignee", {"assignee_id": None}),
        ("stop_timer", "post", "/timer/stop", None),
    ])
    async def test_task_deleted_mid_request_is_bad_request(
            self, client: AsyncClient, project, owner_headers, monkeypatch, operation, method, path, body
    ):
        task = await create_task(client, project, owner_headers)

        async def vanished(*args, **kwargs):
            raise ValueError("Task no longer exists")

        monkeypatch.setattr(crud.task, operation, vanished)
        response = await client.request(
            method.upper(), f"/api/v1/tasks/{task['id']}{path}", json=body, headers=owner_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Task no longer exists"
