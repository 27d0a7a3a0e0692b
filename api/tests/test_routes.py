import sys
import time

TRIGGER = {
    "name": "deploy-main",
    "branch_pattern": "^main$",
    "pipeline_ref": "pipeline.yaml",
    "service_identity": "acme-site",
}

def _wait_finished(client, run_id, timeout=20.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        status = client.get(f"/api/pipelines/runs/{run_id}/status").json()
        if status["status"] in ("succeeded", "failed") and not status["active"]:
            return status
        time.sleep(0.1)
    raise AssertionError(f"run {run_id} did not finish")

def _pipeline(tmp_path, *codes):
    steps = "".join(
        f"  - name: s{i}\n    tool: {sys.executable}\n    args: [\"-c\", \"{code}\"]\n"
        for i, code in enumerate(codes)
    )
    path = tmp_path / "pipeline.yaml"
    path.write_text(f"name: api-site\nsteps:\n{steps}")
    return str(path)

def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/health/db").json()["database"] == "connected"
    assert client.get("/health/all").json()["status"] == "healthy"
    assert client.get("/health/runs").json()["active_runs"] == 0

def test_trigger_crud(client):
    created = client.post("/api/triggers", json=TRIGGER)
    assert created.status_code == 201
    trigger = created.json()
    assert trigger["repository"] is None

    assert client.get(f"/api/triggers/{trigger['id']}").json()["name"] == "deploy-main"
    assert [t["id"] for t in client.get("/api/triggers").json()] == [trigger["id"]]

    assert client.delete(f"/api/triggers/{trigger['id']}").status_code == 204
    assert client.get(f"/api/triggers/{trigger['id']}").status_code == 404
    assert client.get("/api/triggers").json() == []

def test_triggers_listed_in_creation_order(client):
    for name in ("b-second", "a-first", "c-third"):
        client.post("/api/triggers", json=dict(TRIGGER, name=name))

    assert [t["name"] for t in client.get("/api/triggers").json()] == ["b-second", "a-first", "c-third"]

def test_duplicate_trigger_name(client):
    client.post("/api/triggers", json=TRIGGER)

    assert client.post("/api/triggers", json=TRIGGER).status_code == 409

def test_invalid_trigger_rejected(client):
    assert client.post("/api/triggers", json=dict(TRIGGER, branch_pattern="[")).status_code == 422
    assert client.post("/api/triggers", json=dict(TRIGGER, service_identity=" ")).status_code == 422

def test_unknown_run(client):
    assert client.get("/api/pipelines/runs/missing").status_code == 404
    assert client.get("/api/pipelines/runs/missing/logs").status_code == 404

def test_manual_run_executes(live_client, tmp_path):
    path = _pipeline(tmp_path, "print('built')", "print('deployed')")

    response = live_client.post(
        "/api/pipelines/runs",
        json={"pipeline_ref": path, "substitutions": {"_ENV": "prod"}},
    )
    assert response.status_code == 202
    run_id = response.json()["run_id"]

    status = _wait_finished(live_client, run_id)
    assert status["status"] == "succeeded"
    assert [s["status"] for s in status["steps"]] == ["succeeded", "succeeded"]

    run = live_client.get(f"/api/pipelines/runs/{run_id}").json()
    assert run["pipeline_name"] == "api-site"
    assert run["substitutions"] == {"_ENV": "prod"}

    logs = live_client.get(f"/api/pipelines/runs/{run_id}/logs").json()
    assert [s["stdout"] for s in logs["steps"]] == ["built\n", "deployed\n"]

    assert [r["id"] for r in live_client.get("/api/pipelines/runs").json()] == [run_id]
    stats = live_client.get("/api/pipelines/stats").json()
    assert stats["runs"] == {"succeeded": 1}
    assert stats["total_steps"] == 2

def test_failed_run_reports_step(live_client, tmp_path):
    path = _pipeline(tmp_path, "print('ok')", "import sys; sys.exit(9)", "print('never')")

    run_id = live_client.post("/api/pipelines/runs", json={"pipeline_ref": path}).json()["run_id"]
    status = _wait_finished(live_client, run_id)

    assert status["status"] == "failed"
    assert status["failed_step"] == 1
    assert len(status["steps"]) == 2

    logs = live_client.get(f"/api/pipelines/runs/{run_id}/logs").json()
    assert logs["steps"][1]["exit_code"] == 9
    assert "exit=9" in logs["error"]

def test_cancel_run(live_client, tmp_path):
    path = _pipeline(tmp_path, "import time; time.sleep(1)", "print('never')")

    run_id = live_client.post("/api/pipelines/runs", json={"pipeline_ref": path}).json()["run_id"]
    cancel = live_client.post(f"/api/pipelines/runs/{run_id}/cancel")
    assert cancel.json() == {"run_id": run_id, "status": "cancelling"}

    _wait_finished(live_client, run_id)
    run = live_client.get(f"/api/pipelines/runs/{run_id}").json()
    assert run["status"] == "failed"
    assert run["error_kind"] == "cancelled"

    assert live_client.post(f"/api/pipelines/runs/{run_id}/cancel").status_code == 409
