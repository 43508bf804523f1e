import time
import uuid

from fastapi.testclient import TestClient


def _open(client, workspace_id):
    resp = client.post("/api/upload-sessions", json={"workspace_id": str(workspace_id)})
    assert resp.status_code == 201, resp.text
    return resp.json()["session_id"]


def _select(client, session_id, *files):
    resp = client.post(
        f"/api/upload-sessions/{session_id}/files",
        files=[("files", (name, content, "text/plain")) for name, content in files],
        data={"last_modified": [str(1700000000000 + i) for i in range(len(files))]},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _settle(client, session_id):
    """Poll until the background duplicate check has finished."""
    for _ in range(200):
        body = client.get(f"/api/upload-sessions/{session_id}").json()
        if not body["is_checking"] and not any(
            f["status"] in ("new", "checking", "renaming_checking") for f in body["files"]
        ):
            return body
        time.sleep(0.01)
    raise AssertionError(f"session never settled: {body}")


def _upload(client, workspace_id, *files):
    session_id = _open(client, workspace_id)
    _select(client, session_id, *files)
    _settle(client, session_id)
    resp = client.post(f"/api/upload-sessions/{session_id}/commit")
    assert resp.status_code == 200, resp.text
    return session_id, resp.json()


def test_requires_bearer_token(client: TestClient):
    resp = client.get("/api/system/health", headers={"Authorization": ""})
    assert resp.status_code == 200

    resp = client.post(
        "/api/upload-sessions", json={"workspace_id": str(uuid.uuid4())},
        headers={"Authorization": ""},
    )
    assert resp.status_code == 401


def test_open_session_requires_own_workspace(client: TestClient, api_env):
    resp = client.post(
        "/api/upload-sessions", json={"workspace_id": str(api_env["foreign_workspace_id"])},
    )
    assert resp.status_code == 404

    resp = client.post("/api/upload-sessions", json={"workspace_id": "nope"})
    assert resp.status_code == 422


def test_full_upload_flow(client: TestClient, api_env, fake_minio, index_service):
    workspace_id = api_env["workspace_id"]

    _, body = _upload(client, workspace_id, ("Quarterly Report.docx", b"v1"), ("notes.txt", b"hello"))

    assert body["summary"]["outcome"] == "all_succeeded"
    assert body["summary"]["message"] == "All 2 files uploaded successfully"
    assert [r["name"] for r in body["results"]] == ["quarterly_report.docx", "notes.txt"]
    assert body["session"]["files"] == []
    assert len(fake_minio.puts) == 2
    assert index_service.paths() == ["POST /process", "POST /process"]

    listing = client.get(f"/api/workspaces/{workspace_id}/files").json()
    assert [f["name"] for f in listing] == ["notes.txt", "quarterly_report.docx"]
    assert all(f["workspace_ids"] == [str(workspace_id)] for f in listing)


def test_duplicate_overwrite_flow(client: TestClient, api_env, fake_minio):
    workspace_id = api_env["workspace_id"]
    _, first = _upload(client, workspace_id, ("report.docx", b"v1"))
    original = first["results"][0]

    session_id = _open(client, workspace_id)
    _select(client, session_id, ("report.docx", b"version two"))
    body = _settle(client, session_id)

    [selected] = body["files"]
    assert selected["status"] == "duplicate"
    assert selected["existing_file_id"] == original["file_id"]
    assert body["can_commit"] is False

    resp = client.post(
        f"/api/upload-sessions/{session_id}/files/{selected['id']}/resolve",
        json={"action": "overwrite"},
    )
    assert resp.status_code == 200
    assert resp.json()["can_commit"] is True

    commit = client.post(f"/api/upload-sessions/{session_id}/commit").json()
    [result] = commit["results"]
    assert result["action"] == "overwrite"
    assert result["file_id"] == original["file_id"]
    assert result["storage_path"] == original["storage_path"]
    assert fake_minio.objects[("files", original["storage_path"])] == b"version two"

    record = client.get(f"/api/files/{original['file_id']}").json()
    assert record["size_bytes"] == len(b"version two")


def test_duplicate_rename_flow(client: TestClient, api_env):
    workspace_id = api_env["workspace_id"]
    _upload(client, workspace_id, ("report.docx", b"v1"))

    session_id = _open(client, workspace_id)
    body = _select(client, session_id, ("report.docx", b"other"))
    file_id = body["files"][0]["id"]
    _settle(client, session_id)

    resp = client.post(
        f"/api/upload-sessions/{session_id}/files/{file_id}/resolve",
        json={"action": "rename", "new_name": "Report (copy)"},
    )
    assert resp.status_code == 200
    body = _settle(client, session_id)
    assert body["files"][0]["status"] == "unique"
    assert body["files"][0]["candidate_name"] == "report__copy_.docx"

    commit = client.post(f"/api/upload-sessions/{session_id}/commit").json()
    assert commit["results"][0]["name"] == "report__copy_.docx"


def test_skip_only_session_cannot_commit(client: TestClient, api_env):
    workspace_id = api_env["workspace_id"]
    _upload(client, workspace_id, ("report.docx", b"v1"))

    session_id = _open(client, workspace_id)
    file_id = _select(client, session_id, ("report.docx", b"v2"))["files"][0]["id"]
    _settle(client, session_id)

    resp = client.post(
        f"/api/upload-sessions/{session_id}/files/{file_id}/resolve", json={"action": "skip"},
    )
    assert resp.json()["can_commit"] is False
    assert client.post(f"/api/upload-sessions/{session_id}/commit").status_code == 409

    resp = client.post(
        f"/api/upload-sessions/{session_id}/files/{file_id}/resolve", json={"action": "bogus"},
    )
    assert resp.status_code in (409, 422)


def test_session_errors(client: TestClient, api_env):
    session_id = _open(client, api_env["workspace_id"])

    resp = client.patch(f"/api/upload-sessions/{session_id}/files/missing", json={"name": "x"})
    assert resp.status_code == 404

    assert client.delete(f"/api/upload-sessions/{session_id}").status_code == 204
    assert client.get(f"/api/upload-sessions/{session_id}").status_code == 404
    assert client.get(f"/api/upload-sessions/{uuid.uuid4()}").status_code == 404


def test_update_and_remove_selected_file(client: TestClient, api_env):
    session_id = _open(client, api_env["workspace_id"])
    body = _select(client, session_id, ("a.txt", b"a"), ("b.txt", b"b"))
    a_id, b_id = (f["id"] for f in body["files"])

    resp = client.patch(
        f"/api/upload-sessions/{session_id}/files/{a_id}",
        json={"description": "first", "name": "Alpha"},
    )
    assert resp.status_code == 200

    resp = client.delete(f"/api/upload-sessions/{session_id}/files/{b_id}")
    assert resp.status_code == 200

    body = _settle(client, session_id)
    [remaining] = body["files"]
    assert remaining["description"] == "first"
    assert remaining["candidate_name"] == "alpha.txt"

    commit = client.post(f"/api/upload-sessions/{session_id}/commit").json()
    record = client.get(f"/api/files/{commit['results'][0]['file_id']}").json()
    assert record["description"] == "first"


def test_check_duplicates_endpoint(client: TestClient, api_env):
    workspace_id = api_env["workspace_id"]
    _, body = _upload(client, workspace_id, ("report.docx", b"v1"))

    resp = client.post(
        "/api/files/check-duplicates",
        json={"workspace_id": str(workspace_id), "file_names": ["report.docx", "new.pdf"]},
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "conflicting_file_names": ["report.docx"],
        "conflicts": {"report.docx": body["results"][0]["file_id"]},
    }


def test_download_and_delete(client: TestClient, api_env, fake_minio, index_service):
    _, body = _upload(client, api_env["workspace_id"], ("report.docx", b"v1"))
    file_id = body["results"][0]["file_id"]
    path = body["results"][0]["storage_path"]

    resp = client.get(f"/api/files/{file_id}/download")
    assert resp.status_code == 200
    assert resp.json()["url"].startswith(f"http://minio.local/files/{path}")
    assert resp.json()["expires_in"] == 86400

    index_service.delete_status_code = 404
    assert client.delete(f"/api/files/{file_id}").status_code == 204
    assert path in fake_minio.removed
    assert f"DELETE /delete/{file_id}" in index_service.paths()

    assert client.get(f"/api/files/{file_id}").status_code == 404
    assert client.delete(f"/api/files/{file_id}").status_code == 404


def test_bulk_delete_reports_per_file(client: TestClient, api_env):
    _, body = _upload(client, api_env["workspace_id"], ("a.txt", b"a"), ("b.txt", b"b"))
    ids = [r["file_id"] for r in body["results"]]
    missing = str(uuid.uuid4())

    resp = client.post("/api/files/delete", json={"file_ids": [ids[0], missing, ids[1]]})

    assert resp.status_code == 200
    assert resp.json()["deleted"] == ids
    assert list(resp.json()["failed"]) == [missing]


def test_search_forwards_to_index(client: TestClient, index_service):
    index_service.answer = "Leave is 25 days."

    resp = client.post("/api/search", json={"query": "What does the document say about leave?"})

    assert resp.status_code == 200
    assert resp.json() == {"answer": "Leave is 25 days.", "semantic_search": True}


def test_search_upstream_failure(client: TestClient, index_service):
    index_service.status_code = 500
    assert client.post("/api/search", json={"query": "hi"}).status_code == 502


def test_health_reports_index_and_sessions(client: TestClient, api_env):
    _open(client, api_env["workspace_id"])

    body = client.get("/api/system/health").json()

    assert body["status"] == "healthy"
    assert body["checks"]["minio"] == "ok"
    assert body["checks"]["index_service"] == "ok"
    assert body["open_upload_sessions"] == 1


def test_reselected_file_is_reported_as_ignored(client: TestClient, api_env):
    session_id = _open(client, api_env["workspace_id"])

    # No last_modified: both files get the same (name, mtime, size) id
    resp = client.post(
        f"/api/upload-sessions/{session_id}/files",
        files=[
            ("files", ("a.txt", b"one", "text/plain")),
            ("files", ("a.txt", b"two", "text/plain")),
        ],
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["ignored_files"] == ["a.txt"]
    assert len(body["files"]) == 1

    body = _select(client, session_id, ("b.txt", b"b"))
    assert body["ignored_files"] == []
    assert len(body["files"]) == 2
