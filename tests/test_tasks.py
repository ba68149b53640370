"""Tests for the tasks client, its backends and the task contract."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests
from google.api_core import exceptions as gcp_exceptions

from waingest.config import Settings
from waingest.tasks.client import TasksClient
from waingest.tasks.contracts import (
    PROCESS_EVENT_PATH,
    ProcessEventTaskV1,
    process_event_task_id,
)


class TestProcessEventTaskV1:
    def test_round_trip_fields(self):
        task = ProcessEventTaskV1(task_id="webhook-event:5", log_id=5, tenant_id="t1", correlation_id="c1")
        data = task.to_dict()
        assert data["version"] == "v1"
        assert data["task_name"] == "webhook_events.process"
        assert ProcessEventTaskV1.from_dict(data) == task

    @pytest.mark.parametrize(
        "data",
        [
            {"log_id": 1},
            {"version": "v2", "log_id": 1},
            {"version": "v1"},
            {"version": "v1", "log_id": "1"},
            {"version": "v1", "log_id": 0},
            {"version": "v1", "log_id": True},
        ],
    )
    def test_invalid_rejected(self, data):
        with pytest.raises(ValueError):
            ProcessEventTaskV1.from_dict(data)

    def test_task_id(self):
        assert process_event_task_id(12) == "webhook-event:12"
        assert process_event_task_id(12, "sweep:99") == "webhook-event:12:sweep:99"


class TestInlineBackend:
    def test_calls_registered_handler_once_per_task_id(self):
        client = TasksClient(Settings(tasks_backend="inline"))
        handler = MagicMock()
        client.register_inline_handler(PROCESS_EVENT_PATH, handler)

        assert client.enqueue_http("t-1", PROCESS_EVENT_PATH, {"log_id": 1}) is True
        assert client.enqueue_http("t-1", PROCESS_EVENT_PATH, {"log_id": 1}) is False

        handler.assert_called_once_with({"log_id": 1})
        assert client.was_enqueued("t-1")

    def test_unregistered_path_raises(self):
        client = TasksClient(Settings(tasks_backend="inline"))
        with pytest.raises(ValueError):
            client.enqueue_http("t-1", "/tasks/unknown", {})

    def test_remembered_ids_are_bounded(self):
        client = TasksClient(Settings(tasks_backend="inline"), max_seen_ids=3)
        handler = MagicMock()
        client.register_inline_handler(PROCESS_EVENT_PATH, handler)

        for i in range(10):
            client.enqueue_http(f"t-{i}", PROCESS_EVENT_PATH, {"log_id": i})

        assert [client.was_enqueued(f"t-{i}") for i in range(10)] == [False] * 7 + [True] * 3
        # An evicted id is accepted again
        assert client.enqueue_http("t-0", PROCESS_EVENT_PATH, {"log_id": 0}) is True
        assert handler.call_count == 11

    def test_clear_forgets_ids(self):
        client = TasksClient(Settings(tasks_backend="inline"))
        client.register_inline_handler(PROCESS_EVENT_PATH, MagicMock())
        client.enqueue_http("t-1", PROCESS_EVENT_PATH, {})
        client.clear()
        assert not client.was_enqueued("t-1")


class TestHttpBackend:
    def _settings(self, **overrides) -> Settings:
        values = dict(
            tasks_backend="http",
            worker_base_url="http://worker:8000",
            local_dev=True,
            internal_task_secret="s3cret",
        )
        values.update(overrides)
        return Settings(**values)

    def test_posts_with_internal_secret_in_local_dev(self):
        client = TasksClient(self._settings())
        response = MagicMock()
        with patch("waingest.tasks.http_backend.requests.post", return_value=response) as post:
            assert client.enqueue_http("t-1", PROCESS_EVENT_PATH, {"log_id": 1}, "cid") is True

        args, kwargs = post.call_args
        assert args[0] == "http://worker:8000/tasks/webhook-events/process"
        assert kwargs["json"] == {"log_id": 1}
        assert kwargs["headers"]["X-Internal-Task-Secret"] == "s3cret"
        assert kwargs["headers"]["X-Correlation-ID"] == "cid"
        assert "Authorization" not in kwargs["headers"]

    def test_uses_oidc_token_outside_local_dev(self):
        client = TasksClient(self._settings(local_dev=False, tasks_oidc_audience="https://worker"))
        with patch(
            "waingest.tasks.http_backend._fetch_oidc_token", return_value="tok"
        ) as fetch, patch("waingest.tasks.http_backend.requests.post") as post:
            assert client.enqueue_http("t-1", PROCESS_EVENT_PATH, {}) is True

        fetch.assert_called_once_with("https://worker")
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"

    def test_missing_oidc_token_aborts(self):
        client = TasksClient(self._settings(local_dev=False))
        with patch("waingest.tasks.http_backend._fetch_oidc_token", return_value=None), patch(
            "waingest.tasks.http_backend.requests.post"
        ) as post:
            assert client.enqueue_http("t-1", PROCESS_EVENT_PATH, {}) is False
        post.assert_not_called()
        assert not client.was_enqueued("t-1")

    def test_request_failure_returns_false_and_allows_retry(self):
        client = TasksClient(self._settings())
        with patch(
            "waingest.tasks.http_backend.requests.post",
            side_effect=requests.ConnectionError("down"),
        ):
            assert client.enqueue_http("t-1", PROCESS_EVENT_PATH, {}) is False

        with patch("waingest.tasks.http_backend.requests.post"):
            assert client.enqueue_http("t-1", PROCESS_EVENT_PATH, {}) is True

    def test_schedule_time_not_supported(self):
        client = TasksClient(self._settings())
        with patch("waingest.tasks.http_backend.requests.post") as post:
            ok = client.enqueue_http(
                "t-1", PROCESS_EVENT_PATH, {}, schedule_time=datetime.now(timezone.utc)
            )
        assert ok is False
        post.assert_not_called()


class TestCloudTasksBackend:
    def _settings(self, **overrides) -> Settings:
        values = dict(
            tasks_backend="cloud_tasks",
            gcp_project="my-project",
            worker_base_url="https://worker.example.com",
            tasks_oidc_service_account="tasks@my-project.iam.gserviceaccount.com",
            tasks_oidc_audience="https://custom-audience.example.com",
        )
        values.update(overrides)
        return Settings(**values)

    def _mock_client(self) -> MagicMock:
        mock_client = MagicMock()
        mock_client.queue_path.return_value = "projects/my-project/locations/us-central1/queues/q"
        mock_client.create_task.return_value = MagicMock(name="task")
        return mock_client

    def test_task_name_audience_and_url(self):
        mock_client = self._mock_client()
        with patch(
            "waingest.tasks.cloud_tasks_backend.tasks_v2.CloudTasksClient",
            return_value=mock_client,
        ):
            client = TasksClient(self._settings())
            assert client.enqueue_http("webhook-event:7", PROCESS_EVENT_PATH, {"log_id": 7}) is True

        task = mock_client.create_task.call_args.kwargs["task"]
        assert task["name"].endswith("/tasks/webhook-event-7")
        assert task["http_request"]["url"] == (
            "https://worker.example.com/tasks/webhook-events/process"
        )
        oidc = task["http_request"]["oidc_token"]
        assert oidc["audience"] == "https://custom-audience.example.com"
        assert oidc["service_account_email"] == "tasks@my-project.iam.gserviceaccount.com"

    def test_already_exists_counts_as_enqueued(self):
        mock_client = self._mock_client()
        mock_client.create_task.side_effect = gcp_exceptions.AlreadyExists("dup")
        with patch(
            "waingest.tasks.cloud_tasks_backend.tasks_v2.CloudTasksClient",
            return_value=mock_client,
        ):
            assert TasksClient(self._settings()).enqueue_http("t", PROCESS_EVENT_PATH, {}) is True

    def test_missing_project_fails_fast(self):
        with pytest.raises(RuntimeError, match="GOOGLE_CLOUD_PROJECT"):
            TasksClient(self._settings(gcp_project=None)).enqueue_http("t", PROCESS_EVENT_PATH, {})

    def test_missing_service_account_fails_fast(self):
        with pytest.raises(RuntimeError, match="TASKS_OIDC_SERVICE_ACCOUNT"):
            TasksClient(self._settings(tasks_oidc_service_account=None)).enqueue_http(
                "t", PROCESS_EVENT_PATH, {}
            )
