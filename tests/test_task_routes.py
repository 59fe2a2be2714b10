"""Integration tests for the task HTTP endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi.testclient import TestClient

TASKS = "/api/v1/tasks"


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _create(client: TestClient, **payload) -> dict:
    resp = client.post(TASKS, json={"title": "Task", **payload})
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestCreateTask:
    def test_returns_201_with_camel_case_body(self, client: TestClient) -> None:
        resp = client.post(
            TASKS,
            json={
                "title": "  Prepare demo ",
                "priority": "HIGH",
                "dueDate": "2030-05-01T10:00:00Z",
                "tags": ["demo", "demo", " sales "],
                "assignee": "Kim",
            },
        )

        assert resp.status_code == 201
        task = resp.json()
        assert task["id"]
        assert task["title"] == "Prepare demo"
        assert task["status"] == "pending"
        assert task["priority"] == "high"
        assert task["tags"] == ["demo", "sales"]
        assert task["dueDate"].startswith("2030-05-01T10:00:00")
        assert task["createdAt"] == task["updatedAt"]

    def test_missing_title_returns_400_with_field_errors(self, client: TestClient) -> None:
        resp = client.post(TASKS, json={"priority": "low"})

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "validation_failed"
        assert error["message"] == "Validation failed"
        assert any("title" in item["loc"] for item in error["details"]["errors"])

    def test_invalid_status_returns_400(self, client: TestClient) -> None:
        resp = client.post(TASKS, json={"title": "x", "status": "finished"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_failed"


class TestReadTask:
    def test_get_by_id(self, client: TestClient) -> None:
        created = _create(client, title="Lookup")

        resp = client.get(f"{TASKS}/{created['id']}")

        assert resp.status_code == 200
        assert resp.json() == created

    def test_unknown_id_returns_404(self, client: TestClient) -> None:
        resp = client.get(f"{TASKS}/does-not-exist")

        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "task_not_found"
        assert error["message"] == "Task with ID does-not-exist not found"
        assert error["details"] == {"task_id": "does-not-exist"}


class TestUpdateTask:
    def test_patch_merges_fields(self, client: TestClient) -> None:
        created = _create(client, title="Draft", assignee="Lee", tags=["a"])

        resp = client.patch(f"{TASKS}/{created['id']}", json={"status": "completed"})

        assert resp.status_code == 200
        task = resp.json()
        assert task["status"] == "completed"
        assert task["title"] == "Draft"
        assert task["assignee"] == "Lee"
        assert task["tags"] == ["a"]
        assert task["id"] == created["id"]
        assert task["createdAt"] == created["createdAt"]
        assert _ts(task["updatedAt"]) >= _ts(created["updatedAt"])

    def test_put_behaves_like_partial_update(self, client: TestClient) -> None:
        created = _create(client, title="Draft", description="keep")

        resp = client.put(f"{TASKS}/{created['id']}", json={"title": "Renamed"})

        assert resp.status_code == 200
        assert resp.json()["title"] == "Renamed"
        assert resp.json()["description"] == "keep"

    def test_id_in_body_is_ignored(self, client: TestClient) -> None:
        created = _create(client)

        resp = client.patch(f"{TASKS}/{created['id']}", json={"id": "other", "title": "Same id"})

        assert resp.status_code == 200
        assert resp.json()["id"] == created["id"]

    def test_empty_update_returns_400(self, client: TestClient) -> None:
        created = _create(client)

        resp = client.patch(f"{TASKS}/{created['id']}", json={})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "empty_update"

    def test_unknown_id_returns_404(self, client: TestClient) -> None:
        resp = client.patch(f"{TASKS}/missing", json={"title": "x"})

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "task_not_found"


class TestDeleteTask:
    def test_delete_then_get_is_404(self, client: TestClient) -> None:
        created = _create(client, title="Remove me")

        resp = client.delete(f"{TASKS}/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["id"] == created["id"]

        assert client.get(f"{TASKS}/{created['id']}").status_code == 404
        assert client.delete(f"{TASKS}/{created['id']}").status_code == 404


class TestListTasks:
    def test_pagination_envelope(self, client: TestClient) -> None:
        for i in range(12):
            _create(client, title=f"Task {i:02d}")

        resp = client.get(TASKS, params={"page": 2, "limit": 5, "sortBy": "title", "sortOrder": "asc"})

        assert resp.status_code == 200
        body = resp.json()
        assert [t["title"] for t in body["items"]] == [f"Task {i:02d}" for i in range(5, 10)]
        assert body["pagination"] == {
            "page": 2,
            "limit": 5,
            "total": 12,
            "totalPages": 3,
            "hasNextPage": True,
            "hasPreviousPage": True,
        }

    def test_filters(self, client: TestClient) -> None:
        _create(client, title="Deploy", status="in-progress", assignee="Ops Team")
        _create(client, title="Retro", status="completed", tags=["ceremony"])
        _create(client, title="Budget", priority="urgent", dueDate="2030-01-10T00:00:00Z")

        def titles(**params) -> list[str]:
            resp = client.get(TASKS, params=params)
            assert resp.status_code == 200, resp.text
            return sorted(t["title"] for t in resp.json()["items"])

        assert titles(status="completed") == ["Retro"]
        assert titles(priority="urgent") == ["Budget"]
        assert titles(assignee="ops") == ["Deploy"]
        assert titles(search="CEREMONY") == ["Retro"]
        assert titles(dueDateFrom="2030-01-01T00:00:00Z", dueDateTo="2030-01-31T00:00:00Z") == [
            "Budget"
        ]

    def test_limit_above_maximum_returns_400(self, client: TestClient) -> None:
        resp = client.get(TASKS, params={"limit": 101})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_failed"

    def test_unknown_sort_field_returns_400(self, client: TestClient) -> None:
        resp = client.get(TASKS, params={"sortBy": "assignee"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_query"

    def test_inverted_date_range_returns_400(self, client: TestClient) -> None:
        resp = client.get(
            TASKS,
            params={"dueDateFrom": "2030-02-01T00:00:00Z", "dueDateTo": "2030-01-01T00:00:00Z"},
        )

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "invalid_query"
        assert "dueDateFrom must be before dueDateTo" in str(error["details"]["errors"])


class TestStatistics:
    def test_stats_route_is_not_shadowed_by_task_id(self, client: TestClient) -> None:
        _create(client, status="completed", priority="low")
        _create(client, status="pending", priority="high")

        resp = client.get(f"{TASKS}/stats")

        assert resp.status_code == 200
        stats = resp.json()
        assert stats["total"] == 2
        assert stats["completed"] == 1
        assert stats["active"] == 1
        assert stats["completionRate"] == 50.0
        assert stats["byStatus"]["completed"] == 1
        assert stats["byPriority"]["high"] == 1
        assert "lastUpdated" in stats
        assert "dueSoon" in stats


def test_unknown_route_uses_error_envelope(client: TestClient) -> None:
    resp = client.get("/api/v1/unknown")

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "route_not_found"


def test_seeded_app_exposes_sample_tasks(make_client) -> None:
    client = make_client(seed_sample_tasks=True)

    resp = client.get(TASKS, params={"sortBy": "createdAt", "sortOrder": "asc"})

    assert resp.status_code == 200
    items = resp.json()["items"]
    assert len(items) == 4
    assert items[0]["title"] == "Setup Project Structure"
