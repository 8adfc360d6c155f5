"""Integration tests for API endpoints.

These tests verify API endpoints work correctly end-to-end.
"""

import pytest
from datetime import datetime


def _at(hour, minute=0):
    return datetime(2024, 1, 1, hour, minute)


def _iso(hour, minute=0):
    return _at(hour, minute).isoformat()


@pytest.fixture
def base_url(test_workspace_id):
    return f"/workspaces/{test_workspace_id}"


def _create_task(test_client, base_url, **body):
    body.setdefault("title", "Task")
    response = test_client.post(f"{base_url}/tasks", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestWorkspaceEndpoints:
    """Test workspace endpoints."""

    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_and_get_workspace(self, test_client):
        response = test_client.post(
            "/workspaces",
            json={
                "name": "Home",
                "core_time_start": "09:00",
                "core_time_end": "12:00",
                "unplugged_windows": [{"label": "Lunch", "start_time": "12:00", "end_time": "13:00"}],
            },
        )

        assert response.status_code == 201
        workspace = response.json()
        assert workspace["name"] == "Home"
        assert [w["label"] for w in workspace["unplugged_windows"]] == ["Lunch"]

        fetched = test_client.get(f"/workspaces/{workspace['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["core_time_end"] == "12:00"

    def test_full_day_windows_rejected(self, test_client):
        response = test_client.post(
            "/workspaces",
            json={
                "name": "Never",
                "unplugged_windows": [
                    {"label": "Night", "start_time": "18:00", "end_time": "09:00"},
                    {"label": "Day", "start_time": "09:00", "end_time": "18:00"},
                ],
            },
        )

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidWindow"

    def test_bad_window_time_rejected(self, test_client):
        response = test_client.post(
            "/workspaces",
            json={"name": "Bad", "unplugged_windows": [{"label": "x", "start_time": "25:00", "end_time": "26:00"}]},
        )
        assert response.status_code == 422

    def test_unknown_workspace(self, test_client):
        response = test_client.get("/workspaces/missing/timeline")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_replace_unplugged_windows_retimes_blocks(self, test_client, base_url):
        _create_task(test_client, base_url, title="A", minutes=30)
        _create_task(test_client, base_url, title="B", minutes=60)

        response = test_client.put(
            f"{base_url}/unplugged",
            json={"windows": [{"label": "Coffee", "start_time": "09:45", "end_time": "10:00"}]},
        )

        assert response.status_code == 200
        data = response.json()
        assert [w["label"] for w in data["windows"]] == ["Coffee"]
        b_blocks = [b for b in data["blocks"] if b["title"] == "B"]
        assert [(b["start_time"], b["end_time"]) for b in b_blocks] == [
            (_iso(9, 30), _iso(9, 45)),
            (_iso(10), _iso(10, 45)),
        ]


class TestTaskEndpoints:
    """Test task creation and inbox endpoints."""

    def test_create_task_schedules_it(self, test_client, base_url):
        data = _create_task(test_client, base_url, title="Write report", minutes=45)

        assert data["task"]["estimated_minutes"] == 45
        assert len(data["blocks"]) == 1
        block = data["blocks"][0]
        assert (block["start_time"], block["end_time"]) == (_iso(9), _iso(9, 45))
        assert block["status"] == "NOW"

        timeline = test_client.get(f"{base_url}/timeline").json()
        assert timeline["day"] == "2024-01-01"
        assert [b["id"] for b in timeline["blocks"]] == [block["id"]]

    def test_empty_title_rejected(self, test_client, base_url):
        response = test_client.post(f"{base_url}/tasks", json={"title": "", "minutes": 10})
        assert response.status_code == 422

    def test_inbox_task(self, test_client, base_url):
        data = _create_task(test_client, base_url, title="Someday", is_inbox=True)

        assert data["blocks"] == []
        inbox = test_client.get(f"{base_url}/inbox").json()
        assert [t["id"] for t in inbox] == [data["task"]["id"]]

    def test_retried_create_returns_same_task(self, test_client, base_url):
        headers = {"X-Request-ID": "create-1"}
        first = test_client.post(f"{base_url}/tasks", json={"title": "Once", "minutes": 30}, headers=headers)
        second = test_client.post(f"{base_url}/tasks", json={"title": "Once", "minutes": 30}, headers=headers)

        assert first.json()["task"]["id"] == second.json()["task"]["id"]
        assert len(test_client.get(f"{base_url}/timeline").json()["blocks"]) == 1

    def test_move_to_timeline_and_back(self, test_client, base_url):
        task = _create_task(test_client, base_url, title="Later", minutes=30, is_inbox=True)["task"]

        moved = test_client.post(f"{base_url}/tasks/{task['id']}/timeline")
        assert moved.status_code == 200
        assert moved.json()["in_inbox"] is False
        block_id = moved.json()["blocks"][0]["id"]

        back = test_client.post(f"{base_url}/blocks/{block_id}/inbox")
        assert back.status_code == 200
        assert back.json()["task_returned"] is True
        assert [t["id"] for t in test_client.get(f"{base_url}/inbox").json()] == [task["id"]]

    def test_retried_move_to_timeline(self, test_client, base_url):
        task = _create_task(test_client, base_url, title="Later", minutes=20, is_inbox=True)["task"]
        url = f"{base_url}/tasks/{task['id']}/timeline"
        headers = {"X-Request-ID": "move-1"}

        first = test_client.post(url, headers=headers)
        second = test_client.post(url, headers=headers)

        assert second.status_code == first.status_code == 200
        assert [b["id"] for b in second.json()["blocks"]] == [b["id"] for b in first.json()["blocks"]]

    def test_task_crossing_midnight_stays_in_inbox(self, test_client, base_url, clock):
        task = _create_task(test_client, base_url, title="Late", minutes=90, is_inbox=True)["task"]
        clock.set(_at(23))

        response = test_client.post(f"{base_url}/tasks/{task['id']}/timeline")

        assert response.status_code == 200
        assert response.json() == {"blocks": [], "in_inbox": True}

    def test_move_all_to_timeline(self, test_client, base_url):
        _create_task(test_client, base_url, title="A", minutes=30, is_inbox=True)
        _create_task(test_client, base_url, title="B", minutes=30, is_inbox=True)

        response = test_client.post(f"{base_url}/timeline/all")

        assert response.status_code == 200
        assert len(response.json()["blocks"]) == 2
        assert response.json()["in_inbox"] is False

    def test_delete_task(self, test_client, base_url):
        data = _create_task(test_client, base_url, title="Gone", minutes=30)

        response = test_client.delete(f"{base_url}/tasks/{data['task']['id']}")

        assert response.status_code == 200
        assert response.json()["deleted_block_ids"] == [data["blocks"][0]["id"]]
        assert test_client.get(f"{base_url}/timeline").json()["blocks"] == []

    def test_delete_unknown_task(self, test_client, base_url):
        assert test_client.delete(f"{base_url}/tasks/missing").status_code == 404


class TestTransitionEndpoints:
    """Test transitions, reorders and ticks."""

    def test_complete_now(self, test_client, base_url, clock):
        first = _create_task(test_client, base_url, title="A", minutes=30)["blocks"][0]
        second = _create_task(test_client, base_url, title="B", minutes=30)["blocks"][0]
        clock.set(_at(9, 20))

        response = test_client.post(
            f"{base_url}/blocks/{first['id']}/transition",
            json={"action": {"kind": "COMPLETE_NOW"}, "review_memo": "Quick"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["block"]["status"] == "DONE"
        assert data["block"]["end_time"] == _iso(9, 20)
        assert data["shifted_block_ids"] == [second["id"]]
        assert data["promoted"]["id"] == second["id"]

        minutes = test_client.get(f"{base_url}/completed-minutes").json()
        assert minutes["completed_minutes"] == 20

    def test_second_submission_is_conflict(self, test_client, base_url):
        block = _create_task(test_client, base_url, title="A", minutes=30)["blocks"][0]
        url = f"{base_url}/blocks/{block['id']}/transition"

        assert test_client.post(url, json={"action": {"kind": "COMPLETE_NOW"}}).status_code == 200
        response = test_client.post(url, json={"action": {"kind": "COMPLETE_NOW"}})

        assert response.status_code == 409
        assert response.json()["error"] == "AlreadyResolved"
        assert response.json()["block_id"] == block["id"]

    def test_retried_submission_returns_stored_block(self, test_client, base_url):
        block = _create_task(test_client, base_url, title="A", minutes=30)["blocks"][0]
        url = f"{base_url}/blocks/{block['id']}/transition"
        headers = {"X-Request-ID": "complete-1"}

        first = test_client.post(url, json={"action": {"kind": "COMPLETE_NOW"}}, headers=headers)
        second = test_client.post(url, json={"action": {"kind": "COMPLETE_NOW"}}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["block"] == first.json()["block"]
        assert second.json()["shifted_block_ids"] == []

    def test_will_block_is_conflict(self, test_client, base_url):
        _create_task(test_client, base_url, title="A", minutes=30)
        later = _create_task(test_client, base_url, title="B", minutes=30)["blocks"][0]

        response = test_client.post(
            f"{base_url}/blocks/{later['id']}/transition",
            json={"action": {"kind": "COMPLETE_ON_TIME"}},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "InvalidState"

    def test_delay_and_bad_minutes(self, test_client, base_url):
        block = _create_task(test_client, base_url, title="A", minutes=30)["blocks"][0]
        url = f"{base_url}/blocks/{block['id']}/transition"

        bad = test_client.post(url, json={"action": {"kind": "DELAY", "minutes": 0}})
        assert bad.status_code == 422
        assert bad.json()["error"] == "InvalidDuration"

        response = test_client.post(url, json={"action": {"kind": "DELAY", "minutes": 15}})
        assert response.status_code == 200
        assert response.json()["block"]["start_time"] == _iso(9, 15)

    def test_unknown_action_kind(self, test_client, base_url):
        block = _create_task(test_client, base_url, title="A", minutes=30)["blocks"][0]
        response = test_client.post(
            f"{base_url}/blocks/{block['id']}/transition",
            json={"action": {"kind": "SKIP"}},
        )
        assert response.status_code == 422

    def test_reorder(self, test_client, base_url):
        a = _create_task(test_client, base_url, title="A", minutes=30)["blocks"][0]
        b = _create_task(test_client, base_url, title="B", minutes=30)["blocks"][0]
        c = _create_task(test_client, base_url, title="C", minutes=60)["blocks"][0]

        response = test_client.put(f"{base_url}/order", json={"block_ids": [a["id"], c["id"], b["id"]]})

        assert response.status_code == 200
        spans = [(blk["title"], blk["start_time"]) for blk in response.json()["blocks"]]
        assert spans == [("A", _iso(9)), ("C", _iso(9, 30)), ("B", _iso(10, 30))]

    def test_reorder_ahead_of_now_rejected(self, test_client, base_url):
        a = _create_task(test_client, base_url, title="A", minutes=30)["blocks"][0]
        b = _create_task(test_client, base_url, title="B", minutes=30)["blocks"][0]

        response = test_client.put(f"{base_url}/order", json={"block_ids": [b["id"], a["id"]]})

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidReorder"

    def test_tick_flags_overdue_block(self, test_client, base_url, clock):
        block = _create_task(test_client, base_url, title="A", minutes=30)["blocks"][0]
        clock.set(_at(9, 35))

        response = test_client.post(f"{base_url}/tick")

        assert response.status_code == 200
        data = response.json()
        assert data["dropped"] is False
        assert data["flagged"]["id"] == block["id"]
        assert data["flagged"]["status"] == "PENDING"

    def test_active_dates(self, test_client, base_url):
        _create_task(test_client, base_url, title="A", minutes=30)
        assert test_client.get(f"{base_url}/active-dates").json() == ["2024-01-01"]
