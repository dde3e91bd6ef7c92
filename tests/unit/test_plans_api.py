"""
API tests for plan sessions and their steps.
"""
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))


def create_plan(client, *titles):
    body = {"title": "Release 1.2", "goal": "Ship it", "steps": [{"title": t} for t in titles]}
    response = client.post("/api/plans", json=body)
    assert response.status_code == 201
    return response.json()


class TestPlans:
    """Test plan CRUD and status transitions."""

    def test_create_with_steps(self, client):
        plan = create_plan(client, "Build", "Test", "Deploy")

        assert plan["status"] == "PLANNING"
        assert [s["order"] for s in plan["steps"]] == [1, 2, 3]
        assert all(s["status"] == "PENDING" for s in plan["steps"])

    def test_title_required(self, client):
        response = client.post("/api/plans", json={"title": "  "})
        assert response.status_code == 400
        assert response.json()["detail"] == "Title is required"

    def test_list_with_pagination(self, client):
        create_plan(client, "a")
        create_plan(client, "b")

        listing = client.get("/api/plans?limit=1").json()

        assert listing["total"] == 2
        assert listing["limit"] == 1
        assert listing["offset"] == 0
        assert len(listing["plans"]) == 1

    def test_invalid_status(self, client):
        plan = create_plan(client)
        response = client.put(f"/api/plans/{plan['id']}", json={"status": "sleeping"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid status: SLEEPING"

    def test_completing_sets_completed_at(self, client):
        plan = create_plan(client)
        updated = client.put(f"/api/plans/{plan['id']}", json={"status": "completed"}).json()

        assert updated["status"] == "COMPLETED"
        assert updated["completed_at"] is not None

    def test_null_title_keeps_stored_value(self, client):
        plan = create_plan(client, "Build")

        response = client.put(f"/api/plans/{plan['id']}", json={"title": None, "status": None, "goal": "Ship 1.2"})
        assert response.status_code == 200
        assert response.json()["title"] == "Release 1.2"
        assert response.json()["status"] == "PLANNING"
        assert response.json()["goal"] == "Ship 1.2"

        url = f"/api/plans/{plan['id']}/steps/{plan['steps'][0]['id']}"
        step = client.put(url, json={"title": None, "output": "done"})
        assert step.status_code == 200
        assert step.json()["title"] == "Build"
        assert step.json()["output"] == "done"

    def test_execute_pause_cancel(self, client):
        plan = create_plan(client, "Build", "Test")

        executing = client.post(f"/api/plans/{plan['id']}/execute").json()
        assert executing["status"] == "EXECUTING"
        assert executing["steps"][0]["status"] == "IN_PROGRESS"
        assert executing["steps"][1]["status"] == "PENDING"

        assert client.post(f"/api/plans/{plan['id']}/pause").json()["status"] == "PAUSED"

        cancelled = client.post(f"/api/plans/{plan['id']}/cancel").json()
        assert cancelled["status"] == "CANCELLED"
        assert cancelled["steps"][0]["status"] == "SKIPPED"

    def test_delete(self, client):
        plan = create_plan(client, "Build")

        assert client.delete(f"/api/plans/{plan['id']}").json()["success"] is True
        assert client.get(f"/api/plans/{plan['id']}").status_code == 404


class TestSteps:
    """Test step ordering and status timing."""

    def test_append_and_insert_after(self, client):
        plan = create_plan(client, "Build", "Deploy")
        build_id = plan["steps"][0]["id"]

        client.post(f"/api/plans/{plan['id']}/steps", json={"title": "Smoke test"})
        client.post(f"/api/plans/{plan['id']}/steps", json={"title": "Test", "insert_after": build_id})

        steps = client.get(f"/api/plans/{plan['id']}").json()["steps"]
        assert [s["title"] for s in steps] == ["Build", "Test", "Deploy", "Smoke test"]
        assert [s["order"] for s in steps] == [1, 2, 3, 4]

    def test_step_title_required(self, client):
        plan = create_plan(client)
        response = client.post(f"/api/plans/{plan['id']}/steps", json={"title": ""})

        assert response.status_code == 400
        assert response.json()["detail"] == "Step title is required"

    def test_delete_closes_gap(self, client):
        plan = create_plan(client, "a", "b", "c")

        client.delete(f"/api/plans/{plan['id']}/steps/{plan['steps'][0]['id']}")

        steps = client.get(f"/api/plans/{plan['id']}").json()["steps"]
        assert [(s["title"], s["order"]) for s in steps] == [("b", 1), ("c", 2)]

    def test_reorder(self, client):
        plan = create_plan(client, "a", "b", "c")
        ids = [s["id"] for s in plan["steps"]]

        reordered = client.put(f"/api/plans/{plan['id']}/steps/reorder", json={"step_ids": ids[::-1]}).json()

        assert [s["title"] for s in reordered["steps"]] == ["c", "b", "a"]

    def test_status_moves_record_timing(self, client):
        plan = create_plan(client, "a")
        step_id = plan["steps"][0]["id"]
        url = f"/api/plans/{plan['id']}/steps/{step_id}"

        started = client.put(url, json={"status": "in_progress"}).json()
        assert started["started_at"] is not None

        done = client.put(url, json={"status": "COMPLETED", "output": "ok"}).json()
        assert done["completed_at"] is not None
        assert done["duration"] >= 0
        assert done["output"] == "ok"

    def test_step_must_belong_to_plan(self, client):
        first = create_plan(client, "a")
        second = create_plan(client, "b")

        response = client.put(f"/api/plans/{second['id']}/steps/{first['steps'][0]['id']}", json={"title": "x"})

        assert response.status_code == 404
        assert response.json()["detail"] == "Step not found"

    def test_diagram(self, client):
        plan = create_plan(client, "Build", "Test")

        result = client.get(f"/api/plans/{plan['id']}/diagram").json()

        assert result["diagram"].startswith("flowchart TD")
        assert f"{plan['steps'][0]['id']} --> {plan['steps'][1]['id']}" in result["diagram"]
        assert len(result["steps"]) == 2
