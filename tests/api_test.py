import pytest
from fastapi.testclient import TestClient

from conftest import pdf_bytes
from filemerger.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def session_id(client):
    response = client.post("/sessions")
    assert response.status_code == 200
    return response.json()["session_id"]


def _upload(client, session_id, files, append=False):
    payload = [("files", item) for item in files]
    return client.post(f"/sessions/{session_id}/files", params={"append": "true" if append else "false"}, files=payload)


def _names(body):
    return [card["filename"] for card in body["files"]]


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_full_merge_flow(client, session_id):
    response = _upload(
        client,
        session_id,
        [
            ("a.txt", b"alpha", "text/plain"),
            ("b.pdf", pdf_bytes(2), "application/pdf"),
            (".DS_Store", b"junk", "application/octet-stream"),
        ],
    )
    body = response.json()
    assert response.status_code == 200
    assert _names(body) == ["a.txt", "b.pdf"]
    assert body["rejected"] == [".DS_Store"]
    assert body["files"][1]["kind"] == "pdf"
    assert body["files"][1]["extension"] == "PDF"

    response = client.post(f"/sessions/{session_id}/reorder", json={"source_index": 0, "insertion_point": 2})
    assert response.status_code == 409

    client.put(f"/sessions/{session_id}/ordering", json={"enabled": True})
    response = client.post(f"/sessions/{session_id}/reorder", json={"source_index": 0, "insertion_point": 2})
    assert response.json()["changed"] is True
    assert _names(response.json()) == ["b.pdf", "a.txt"]

    client.post(f"/sessions/{session_id}/drag", json={"type": "start", "index": 1})
    response = client.post(f"/sessions/{session_id}/drag", json={"type": "drop_item", "target_index": 0})
    assert response.json()["effect"] == "swap"
    assert response.json()["dragging"] is None
    assert _names(response.json()) == ["a.txt", "b.pdf"]

    response = client.post(f"/sessions/{session_id}/merge")
    body = response.json()
    assert body["status"] == "succeeded"
    assert body["message"] == "PDF created successfully."
    assert body["run"]["page_count"] == 3
    result = body["result"]
    assert result["filename"].startswith("merged-files-")
    assert result["preview"].startswith("data:image/png;base64,")

    download = client.get(result["download_url"])
    assert download.status_code == 200
    assert download.content.startswith(b"%PDF")

    listed = [item["filename"] for item in client.get("/files/").json()["files"]]
    assert result["download_url"].rsplit("/", 1)[-1] in listed

    kinds = [event["kind"] for event in client.get(f"/sessions/{session_id}/events").json()["events"]]
    assert "file-list-changed" in kinds
    assert "progress" in kinds
    assert kinds[-1] == "succeeded"

    assert client.get(f"/sessions/{session_id}/run").json()["status"] == "succeeded"


def test_events_since_sequence(client, session_id):
    _upload(client, session_id, [("a.txt", b"alpha", "text/plain")])
    events = client.get(f"/sessions/{session_id}/events").json()["events"]
    last_seq = events[-1]["seq"]

    client.put(f"/sessions/{session_id}/ordering", json={"enabled": True})
    newer = client.get(f"/sessions/{session_id}/events", params={"since": last_seq}).json()["events"]
    assert [event["payload"]["reason"] for event in newer] == ["ordering"]


def test_append_upload(client, session_id):
    _upload(client, session_id, [("a.txt", b"alpha", "text/plain")])
    body = _upload(client, session_id, [("b.txt", b"beta", "text/plain")], append=True).json()
    assert _names(body) == ["a.txt", "b.txt"]


def test_only_hidden_files_selected(client, session_id):
    body = _upload(client, session_id, [(".hidden", b"x", "text/plain")]).json()
    assert body["files"] == []
    assert body["message"] == "No files selected. Please select files to process."


def test_merge_without_files_fails(client, session_id):
    body = client.post(f"/sessions/{session_id}/merge").json()
    assert body["status"] == "failed"
    assert body["message"] == "No valid files to process."
    assert body["result"] is None

    body = client.post(f"/sessions/{session_id}/retry").json()
    assert body["status"] == "failed"


def test_reset_clears_selection(client, session_id):
    _upload(client, session_id, [("a.txt", b"alpha", "text/plain")])
    body = client.post(f"/sessions/{session_id}/reset").json()
    assert body["files"] == []
    assert body["run"]["status"] == "idle"


def test_redeliver_without_result(client, session_id):
    response = client.post(f"/sessions/{session_id}/redeliver")
    assert response.status_code == 400
    assert response.json()["detail"] == "No PDF data available for download."


def test_reorder_needs_exactly_one_target(client, session_id):
    response = client.post(
        f"/sessions/{session_id}/reorder",
        json={"source_index": 0, "insertion_point": 1, "target_index": 1},
    )
    assert response.status_code == 422


def test_reorder_out_of_range(client, session_id):
    _upload(client, session_id, [("a.txt", b"alpha", "text/plain")])
    client.put(f"/sessions/{session_id}/ordering", json={"enabled": True})
    response = client.post(f"/sessions/{session_id}/reorder", json={"source_index": 3, "target_index": 0})
    assert response.status_code == 400


def test_directory_import_is_disabled_by_default(client, session_id):
    response = client.post(f"/sessions/{session_id}/files/import", json={"path": "anything"})
    assert response.status_code == 403


def test_unknown_session(client):
    response = client.get("/sessions/does-not-exist")
    assert response.status_code == 404
    assert response.json()["status"] == "error"


def test_closed_session_is_gone(client, session_id):
    assert client.delete(f"/sessions/{session_id}").status_code == 200
    assert client.get(f"/sessions/{session_id}/files").status_code == 404
