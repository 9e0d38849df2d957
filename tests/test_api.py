import time

import pytest
from fastapi.testclient import TestClient

from conftest import make_cable, make_tray
from racewayroute.batch import BatchWorker
from racewayroute.config import settings
from racewayroute.main import create_app
from racewayroute.models import RoutingOptions
from racewayroute.routers import cable_routing

TRAYS = [
    {"id": "T1", "start": {"x": 0, "y": 0, "z": 0}, "end": {"x": 10, "y": 0, "z": 0}, "width": 10, "height": 10},
    {"id": "T2", "start": {"x": 10, "y": 0, "z": 0}, "end": {"x": 10, "y": 10, "z": 0}, "width": 10, "height": 10},
]


@pytest.fixture
def client():
    return TestClient(create_app())


def _wait_for_done(client, job_id, timeout=10.0):
    messages = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/api/batch/{job_id}").json()
        messages.extend(body["messages"])
        if body["state"] == "done":
            return body, messages
        time.sleep(0.05)
    raise AssertionError(f"batch {job_id} did not finish")


def test_route_single_cable(client):
    response = client.post("/api/route", json={
        "raceways": TRAYS,
        "cable": {"id": "C1", "start": [2, 0, 0], "end": [10, 6, 0], "diameter": 1.0},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert sorted(body["tray_segments"]) == ["T1", "T2"]
    assert body["total_length"] == pytest.approx(14.0)


def test_route_reports_unroutable_manual_path(client):
    response = client.post("/api/route", json={
        "raceways": TRAYS,
        "cable": {"start": [0, 0, 0], "end": [10, 10, 0], "diameter": 1.0, "manual_path": "T1>T7"},
    })

    assert response.status_code == 200
    assert response.json()["error"] == "Tray T7 not found"


def test_route_options_override_defaults(client):
    response = client.post("/api/route", json={
        "raceways": TRAYS,
        "cable": {"start": [0, 50, 0], "end": [10, 50, 0], "diameter": 1.0},
        "options": {"fieldPenalty": 1.0},
    })

    assert response.json()["cost"] == pytest.approx(10.0)


@pytest.mark.parametrize("payload", [
    {"raceways": TRAYS, "cable": {"start": [0, 0, 0], "end": [1, 0, 0]}},
    {"raceways": TRAYS, "cable": {"start": [0, 0], "end": [1, 0, 0], "diameter": 1}},
    {"raceways": [{**TRAYS[0], "kind": "wireway"}], "cable": {"start": [0, 0, 0], "end": [1, 0, 0], "diameter": 1}},
])
def test_route_validation_errors(client, payload):
    assert client.post("/api/route", json=payload).status_code == 422


def test_batch_lifecycle(client):
    cables = [
        {"id": "C1", "start": [2, 0, 0], "end": [10, 6, 0], "diameter": 1.0},
        {"id": "C2", "start": [0, 40, 0], "end": [20, 40, 0], "diameter": 1.0},
        {"id": "C3", "start": [0, 40, 0], "end": [20, 40, 0], "diameter": 1.0},
    ]
    response = client.post("/api/batch", json={"raceways": TRAYS, "cables": cables})
    assert response.status_code == 202
    job_id = response.json()["jobId"]
    assert response.json()["total"] == 3

    body, messages = _wait_for_done(client, job_id)
    done = messages[-1]
    assert done["type"] == "done"
    assert [r["cable"] for r in done["results"]] == ["C1", "C2", "C3"]
    assert [m["completed"] for m in messages if m["type"] == "progress"] == [1, 2, 3]
    assert body["commonFieldRoutes"] and body["commonFieldRoutes"][0]["cables"] == ["C2", "C3"]

    assert client.post(f"/api/batch/{job_id}/resume").status_code == 409
    assert client.delete(f"/api/batch/{job_id}").status_code == 204
    assert client.get(f"/api/batch/{job_id}").status_code == 404


def test_unknown_batch_job(client):
    assert client.get("/api/batch/missing").status_code == 404
    assert client.post("/api/batch/missing/cancel").status_code == 404
    assert client.delete("/api/batch/missing").status_code == 404


TRAY_ROWS = [
    {"tray_id": "T1", "start_x": "0", "start_y": "0", "start_z": "0",
     "end_x": "10", "end_y": "0", "end_z": "0", "inside_width": "10", "tray_depth": "10"},
    {"tray_id": "T2", "start": [10, 0, 0], "end": [10, 10, 0], "width": 10, "height": 10},
]


def test_route_from_schedule_rows(client):
    response = client.post("/api/route", json={
        "trays": TRAY_ROWS,
        "cable": {"id": "C1", "start": [2, 0, 0], "end": [10, 6, 0], "diameter": 1.0},
    })

    assert response.status_code == 200
    assert sorted(response.json()["tray_segments"]) == ["T1", "T2"]


def test_batch_from_schedule_rows(client):
    response = client.post("/api/batch", json={
        "trays": TRAY_ROWS,
        "conduits": [{"tag": "DB1-C1", "type": "EMT", "trade_size": "2"}],
        "ductbanks": [{"ductbank_id": "DB1", "start": [0, 20, 0], "end": [0, 80, 0]}],
        "cableSchedule": [
            {"tag": "P-1", "start": [2, 0, 0], "end": [10, 6, 0], "cable_od": "1.0"},
            {"tag": "P-2", "start": [0, 15, 0], "end": [0, 85, 0], "cable_od": "0.5"},
        ],
    })
    assert response.status_code == 202
    assert response.json()["total"] == 2

    _, messages = _wait_for_done(client, response.json()["jobId"])
    results = messages[-1]["results"]
    assert [r["cable"] for r in results] == ["P-1", "P-2"]
    assert "DB1-C1" in results[1]["tray_segments"]
    assert "DB1-C1" in messages[-1]["utilization"]


@pytest.mark.parametrize("payload", [
    {"trays": [{"tray_id": "T1", "start": [0, 0, 0]}], "cables": [{"start": [0, 0, 0], "end": [1, 0, 0], "diameter": 1}]},
    {"raceways": TRAYS, "cableSchedule": [{"start": [0, 0, 0], "end": [1, 0, 0]}]},
    {"raceways": TRAYS},
])
def test_batch_rejects_bad_schedule(client, payload):
    assert client.post("/api/batch", json=payload).status_code == 400


def test_route_rejects_bad_schedule(client):
    response = client.post("/api/route", json={
        "conduits": [{"tag": "C1", "diameter": 1}],
        "cable": {"start": [0, 0, 0], "end": [1, 0, 0], "diameter": 1},
    })

    assert response.status_code == 400
    assert "missing start/end" in response.json()["detail"]


@pytest.fixture
def registered_job():
    added = []

    def register(worker):
        job_id = f"test-{len(added)}-{id(worker)}"
        cable_routing._jobs[job_id] = worker
        added.append((job_id, worker))
        return job_id

    yield register
    for job_id, worker in added:
        worker.stop(timeout=5)
        cable_routing._jobs.pop(job_id, None)


def test_resume_requires_cancelled_job(client, registered_job):
    job_id = registered_job(BatchWorker())

    response = client.post(f"/api/batch/{job_id}/resume")
    assert response.status_code == 409
    assert "idle" in response.json()["detail"]


def test_resume_cancelled_job(client, registered_job):
    raceways = [make_tray("T1", (0, 0, 0), (10, 0, 0))]
    cables = [make_cable(f"C{i}", (0, i, 0), (10, i, 0)) for i in range(3)]

    def on_message(message):
        if message["type"] == "progress" and message["completed"] == 1:
            worker.cancel()

    worker = BatchWorker(on_message=on_message)
    job_id = registered_job(worker)
    worker.start(raceways, cables, RoutingOptions())
    while worker.next_message(timeout=10)["type"] != "cancelled":
        pass

    body = client.get(f"/api/batch/{job_id}").json()
    assert body["state"] == "cancelled"

    response = client.post(f"/api/batch/{job_id}/resume")
    assert response.status_code == 200
    body, messages = _wait_for_done(client, job_id)
    assert [m["completed"] for m in messages if m["type"] == "progress"] == [2, 3]


def test_finished_jobs_are_pruned(client, monkeypatch):
    monkeypatch.setattr(settings, "max_finished_jobs", 0)
    payload = {"raceways": TRAYS, "cables": [{"start": [2, 0, 0], "end": [10, 6, 0], "diameter": 1.0}]}

    first = client.post("/api/batch", json=payload).json()["jobId"]
    _wait_for_done(client, first)
    deadline = time.monotonic() + 10
    while cable_routing._jobs[first].is_alive and time.monotonic() < deadline:
        time.sleep(0.01)

    second = client.post("/api/batch", json=payload).json()["jobId"]
    assert client.get(f"/api/batch/{first}").status_code == 404
    _wait_for_done(client, second)
    assert client.delete(f"/api/batch/{second}").status_code == 204
