"""Tests for the tasks HTTP API."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from conftest import OWNER_ID
from tasktrack.api.v1.auth import get_current_owner
from tasktrack.api.v1.tasks import get_task_service
from tasktrack.config import get_settings
from tasktrack.main import app
from tasktrack.repository.memory import InMemoryTaskRepository
from tasktrack.services.exceptions import StorageError
from tasktrack.services.task import TaskService

TASKS_URL = "/api/v1/tasks/"


@pytest.fixture
def client(service):
    # No context manager: the lifespan would try to reach the database
    app.dependency_overrides[get_task_service] = lambda: service
    app.dependency_overrides[get_current_owner] = lambda: OWNER_ID
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(service):
    app.dependency_overrides[get_task_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def create(client, **body):
    response = client.post(TASKS_URL, json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestTaskRoutes:
    def test_create_and_get(self, client):
        task = create(client, title="Write report", priority="high")

        response = client.get(f"{TASKS_URL}{task['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Write report"
        assert data["priority"] == "high"
        assert data["status"] == "not_done"
        assert data["owner_id"] == str(OWNER_ID)
        assert data["dependencies"] == []

    def test_create_validates_body(self, client):
        response = client.post(TASKS_URL, json={"title": "", "priority": "urgent"})

        assert response.status_code == 422

    def test_list_with_filters(self, client):
        create(client, title="Buy milk", priority="low")
        create(client, title="Buy bread", priority="high")
        create(client, title="Call mom", priority="high")

        response = client.get(
            TASKS_URL, params={"search": "buy", "sort": "priority", "order": "asc"}
        )

        assert response.status_code == 200
        assert [t["title"] for t in response.json()] == ["Buy milk", "Buy bread"]

    def test_list_rejects_unknown_sort(self, client):
        response = client.get(TASKS_URL, params={"sort": "owner_id"})

        assert response.status_code == 422

    def test_get_unknown_task(self, client):
        response = client.get(f"{TASKS_URL}{uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"

    def test_get_malformed_id(self, client):
        response = client.get(f"{TASKS_URL}not-a-uuid")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_ID"

    def test_patch_requires_a_field(self, client):
        task = create(client, title="A")

        response = client.patch(f"{TASKS_URL}{task['id']}", json={})

        assert response.status_code == 422

    def test_patch_rejects_null_title(self, client):
        task = create(client, title="A")

        response = client.patch(f"{TASKS_URL}{task['id']}", json={"title": None})

        assert response.status_code == 422

    def test_completion_blocked_by_dependency(self, client):
        a = create(client, title="Book venue")
        b = create(client, title="Send invites", dependencies=[a["id"]])

        response = client.patch(f"{TASKS_URL}{b['id']}", json={"status": "done"})

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "UNMET_DEPENDENCIES"
        assert detail["items"] == ["Book venue"]
        assert "Book venue" in detail["message"]

    def test_invalid_dependency_reference(self, client):
        response = client.post(TASKS_URL, json={"title": "B", "dependencies": ["abc"]})

        assert response.status_code == 400
        assert response.json()["detail"] == {
            "code": "INVALID_REFERENCE",
            "message": "Invalid dependency ID: abc",
            "items": ["abc"],
        }

    def test_delete_blocked_then_allowed(self, client):
        a = create(client, title="A")
        b = create(client, title="B", dependencies=[a["id"]])

        blocked = client.delete(f"{TASKS_URL}{a['id']}")
        assert blocked.status_code == 400
        assert blocked.json()["detail"]["code"] == "HAS_DEPENDENTS"

        assert client.delete(f"{TASKS_URL}{b['id']}").status_code == 200
        response = client.delete(f"{TASKS_URL}{a['id']}")

        assert response.status_code == 200
        assert response.json() == {"message": "Task deleted successfully"}
        assert client.get(TASKS_URL).json() == []

    def test_recurring_task_response(self, client):
        task = create(client, title="Standup", is_recurring=True, recurrence_pattern="daily")

        assert task["is_recurring"] is True
        assert task["next_recurrence"] is not None

    def test_request_id_is_echoed(self, client):
        response = client.get(TASKS_URL, headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"


class UnavailableRepository(InMemoryTaskRepository):
    async def find(self, filter, sort=None):
        raise StorageError("Storage operation 'find' failed")

    async def find_one(self, filter):
        raise StorageError("Storage operation 'find_one' failed")


@pytest.fixture
def client_for():
    def build(service):
        app.dependency_overrides[get_task_service] = lambda: service
        app.dependency_overrides[get_current_owner] = lambda: OWNER_ID
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()


class TestErrorResponses:
    def test_storage_failure_is_503(self, client_for):
        client = client_for(TaskService(UnavailableRepository()))

        response = client.get(TASKS_URL)

        assert response.status_code == 503
        assert response.json() == {
            "detail": {
                "code": "STORAGE_FAILURE",
                "message": "Storage operation 'find' failed",
                "items": [],
            }
        }

    def test_storage_failure_on_get_is_503(self, client_for):
        client = client_for(TaskService(UnavailableRepository()))

        response = client.get(f"{TASKS_URL}{uuid4()}")

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "STORAGE_FAILURE"

    def test_self_reference(self, client):
        task = create(client, title="A")

        response = client.patch(
            f"{TASKS_URL}{task['id']}", json={"dependencies": [task["id"]]}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == {
            "code": "SELF_REFERENCE",
            "message": "A task cannot depend on itself",
            "items": [task["id"]],
        }

    def test_recurring_without_pattern(self, client):
        response = client.post(TASKS_URL, json={"title": "Standup", "is_recurring": True})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_RECURRENCE"

    def test_pattern_without_recurring_flag(self, client):
        task = create(client, title="Gym")

        response = client.patch(
            f"{TASKS_URL}{task['id']}", json={"recurrence_pattern": "weekly"}
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_RECURRENCE"

    def test_dependency_cycle(self, client_for, repository, clock, scheduler):
        client = client_for(
            TaskService(
                repository, clock=clock, scheduler=scheduler, reject_dependency_cycles=True
            )
        )
        a = create(client, title="A")
        b = create(client, title="B", dependencies=[a["id"]])

        response = client.patch(f"{TASKS_URL}{a['id']}", json={"dependencies": [b["id"]]})

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "CYCLIC_DEPENDENCY"
        assert detail["items"] == ["B"]

    def test_unknown_dependency(self, client):
        missing = str(uuid4())

        response = client.post(TASKS_URL, json={"title": "B", "dependencies": [missing]})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "DEPENDENCY_NOT_FOUND"
        assert response.json()["detail"]["items"] == [missing]


class TestAuthentication:
    def test_missing_token(self, anonymous_client):
        response = anonymous_client.get(TASKS_URL)

        assert response.status_code == 401

    def test_garbage_token(self, anonymous_client):
        response = anonymous_client.get(
            TASKS_URL, headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401

    def test_valid_access_token(self, anonymous_client):
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(OWNER_ID), "type": "access"},
            settings.jwt_secret_key.get_secret_value(),
            algorithm=settings.jwt_algorithm,
        )

        response = anonymous_client.get(
            TASKS_URL, headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200

    def test_refresh_token_is_rejected(self, anonymous_client):
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(OWNER_ID), "type": "refresh"},
            settings.jwt_secret_key.get_secret_value(),
            algorithm=settings.jwt_algorithm,
        )

        response = anonymous_client.get(
            TASKS_URL, headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
