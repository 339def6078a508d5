"""
Canvas API 엔드포인트 테스트

인증은 X-Test-User 헤더로 대체한다 (conftest의 api_client).
"""

import pytest

from conftest import EDITOR_ID, OWNER_ID, STRANGER_ID, VIEWER_ID, as_user

BASE = "/api/v1/canvas"


def create_body(element_id: str, **fields):
    element = {"id": element_id, "type": "shape", "x": 0.0, "y": 0.0}
    element.update(fields)
    return {"type": "create", "data": {"element": element}}


@pytest.mark.api
class TestHealthAndEnvelope:
    """헬스 체크와 공통 응답 형식"""

    async def test_health(self, api_client):
        response = await api_client.get("/api/v1/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_detailed_health_checks_database(self, api_client):
        response = await api_client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        assert response.json()["services"]["database"] == "healthy"

    async def test_request_id_is_echoed(self, api_client, project):
        # When
        response = await api_client.get(
            f"{BASE}/projects/{project.id}",
            headers={**as_user(OWNER_ID), "X-Request-ID": "req-123"},
        )

        # Then
        body = response.json()
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-123"
        assert body["success"] is True
        assert body["request_id"] == "req-123"
        assert body["data"]["id"] == project.id

    async def test_missing_credentials_is_401(self, api_client, project):
        response = await api_client.get(f"{BASE}/projects/{project.id}")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error_code"] == "AUTHENTICATION_REQUIRED"

    async def test_unknown_route_is_404(self, api_client):
        response = await api_client.get("/api/v1/nope")

        assert response.status_code == 404
        assert response.json()["success"] is False


@pytest.mark.api
class TestProjectEndpoints:
    """프로젝트 API"""

    async def test_create_and_list(self, api_client):
        # When
        created = await api_client.post(
            f"{BASE}/projects",
            json={"name": "새 보드", "settings": {"width": 1200}},
            headers=as_user(OWNER_ID),
        )
        listed = await api_client.get(f"{BASE}/projects", headers=as_user(OWNER_ID))

        # Then
        assert created.status_code == 201
        project = created.json()["data"]
        assert project["ownerId"] == OWNER_ID
        assert project["settings"] == {"width": 1200}
        assert [p["id"] for p in listed.json()["data"]["projects"]] == [project["id"]]

    async def test_stranger_is_forbidden(self, api_client, project):
        response = await api_client.get(f"{BASE}/projects/{project.id}", headers=as_user(STRANGER_ID))

        assert response.status_code == 403
        assert response.json()["error_code"] == "INSUFFICIENT_PERMISSIONS"

    async def test_missing_project_is_404(self, api_client):
        response = await api_client.get(f"{BASE}/projects/missing", headers=as_user(OWNER_ID))

        assert response.status_code == 404
        assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"

    async def test_add_collaborator(self, api_client, project):
        # When
        response = await api_client.post(
            f"{BASE}/projects/{project.id}/collaborators",
            json={"userId": "new-user", "role": "editor"},
            headers=as_user(OWNER_ID),
        )

        # Then
        assert response.status_code == 201
        assert response.json()["data"]["userId"] == "new-user"

    async def test_owner_role_request_is_rejected(self, api_client, project):
        response = await api_client.post(
            f"{BASE}/projects/{project.id}/collaborators",
            json={"userId": "new-user", "role": "owner"},
            headers=as_user(OWNER_ID),
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    async def test_delete_requires_owner(self, api_client, project):
        denied = await api_client.delete(f"{BASE}/projects/{project.id}", headers=as_user(EDITOR_ID))
        deleted = await api_client.delete(f"{BASE}/projects/{project.id}", headers=as_user(OWNER_ID))
        gone = await api_client.get(f"{BASE}/projects/{project.id}", headers=as_user(OWNER_ID))

        assert denied.status_code == 403
        assert deleted.status_code == 200
        assert deleted.json()["data"] == {"projectId": project.id}
        assert gone.status_code == 404


@pytest.mark.api
class TestOpEndpoints:
    """작업 API"""

    async def test_append_list_and_elements(self, api_client, project):
        # Given
        ops_url = f"{BASE}/projects/{project.id}/ops"
        await api_client.post(ops_url, json=create_body("a"), headers=as_user(EDITOR_ID))

        # When
        moved = await api_client.post(
            ops_url,
            json={"type": "move", "elementId": "a", "data": {"delta": {"x": 5, "y": 2}}},
            headers=as_user(EDITOR_ID),
        )
        listed = await api_client.get(ops_url, params={"fromOp": 1}, headers=as_user(VIEWER_ID))
        elements = await api_client.get(f"{BASE}/projects/{project.id}/elements", headers=as_user(VIEWER_ID))

        # Then
        assert moved.status_code == 201
        assert moved.json()["data"]["opIndex"] == 1
        ops = listed.json()["data"]["ops"]
        assert [(op["opIndex"], op["type"], op["actorId"]) for op in ops] == [(1, "move", EDITOR_ID)]
        data = elements.json()["data"]
        assert data["elementCount"] == 1
        assert (data["elements"]["a"]["x"], data["elements"]["a"]["y"]) == (5.0, 2.0)

    async def test_duplicate_request_returns_existing_op(self, api_client, project):
        # Given
        ops_url = f"{BASE}/projects/{project.id}/ops"
        body = {**create_body("a"), "requestId": "client-req-1"}

        # When
        first = await api_client.post(ops_url, json=body, headers=as_user(OWNER_ID))
        second = await api_client.post(ops_url, json=body, headers=as_user(OWNER_ID))

        # Then
        assert first.json()["data"]["duplicate"] is False
        assert second.json()["data"] == {**first.json()["data"], "duplicate": True}

    async def test_viewer_cannot_append(self, api_client, project):
        response = await api_client.post(
            f"{BASE}/projects/{project.id}/ops", json=create_body("a"), headers=as_user(VIEWER_ID),
        )

        assert response.status_code == 403

    @pytest.mark.parametrize("body", [
        {"type": "teleport", "data": {}},
        {"type": "move", "data": {"delta": {"x": 1, "y": 1}}},
        {"type": "create", "data": {}},
    ])
    async def test_invalid_op_is_422(self, api_client, project, body):
        response = await api_client.post(
            f"{BASE}/projects/{project.id}/ops", json=body, headers=as_user(EDITOR_ID),
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    async def test_negative_from_op_is_422(self, api_client, project):
        response = await api_client.get(
            f"{BASE}/projects/{project.id}/ops", params={"fromOp": -1}, headers=as_user(VIEWER_ID),
        )

        assert response.status_code == 422

    async def test_undo_appends_inverse(self, api_client, project):
        # Given
        ops_url = f"{BASE}/projects/{project.id}/ops"
        await api_client.post(ops_url, json=create_body("a", x=10.0), headers=as_user(OWNER_ID))
        moved = await api_client.post(
            ops_url,
            json={"type": "move", "elementId": "a", "data": {"delta": {"x": 5, "y": 0}}},
            headers=as_user(OWNER_ID),
        )
        op_id = moved.json()["data"]["opId"]

        # When
        undone = await api_client.post(
            f"{ops_url}/{op_id}/undo", json={"requestId": "undo-1"}, headers=as_user(EDITOR_ID),
        )
        elements = await api_client.get(f"{BASE}/projects/{project.id}/elements", headers=as_user(OWNER_ID))

        # Then
        assert undone.status_code == 201
        assert undone.json()["data"]["opIndex"] == 2
        assert elements.json()["data"]["elements"]["a"]["x"] == 10.0

    async def test_undo_without_body(self, api_client, project):
        # Given
        ops_url = f"{BASE}/projects/{project.id}/ops"
        created = await api_client.post(ops_url, json=create_body("a"), headers=as_user(OWNER_ID))

        # When
        undone = await api_client.post(
            f"{ops_url}/{created.json()['data']['opId']}/undo", headers=as_user(OWNER_ID),
        )
        elements = await api_client.get(f"{BASE}/projects/{project.id}/elements", headers=as_user(OWNER_ID))

        # Then
        assert undone.status_code == 201
        assert elements.json()["data"]["elementCount"] == 0

    async def test_undo_unknown_op_is_404(self, api_client, project):
        response = await api_client.post(
            f"{BASE}/projects/{project.id}/ops/missing/undo", headers=as_user(OWNER_ID),
        )

        assert response.status_code == 404

    async def test_reconcile(self, api_client, project):
        # Given
        await api_client.post(
            f"{BASE}/projects/{project.id}/ops", json=create_body("a"), headers=as_user(OWNER_ID),
        )

        # When
        response = await api_client.post(f"{BASE}/projects/{project.id}/reconcile", headers=as_user(EDITOR_ID))

        # Then
        data = response.json()["data"]
        assert response.status_code == 200
        assert (data["opIndex"], data["elementCount"], data["upserted"], data["deleted"]) == (0, 1, 0, 0)

    async def test_mistyped_update_is_rejected_and_projection_stays_consistent(self, api_client, project):
        """문자열 좌표 update는 시퀀싱 전에 거부되고, null 필드가 섞인 create도 drift 없이 재생된다"""
        # Given
        await api_client.post(
            f"{BASE}/projects/{project.id}/ops", json=create_body("a", x=1, y=2, width=None), headers=as_user(OWNER_ID),
        )

        # When
        rejected = await api_client.post(
            f"{BASE}/projects/{project.id}/ops",
            json={"type": "update", "elementId": "a", "data": {"updates": {"x": "abc"}}},
            headers=as_user(EDITOR_ID),
        )
        reconciled = await api_client.post(f"{BASE}/projects/{project.id}/reconcile", headers=as_user(EDITOR_ID))

        # Then
        data = reconciled.json()["data"]
        assert rejected.status_code == 422
        assert rejected.json()["error_code"] == "VALIDATION_ERROR"
        assert rejected.json()["details"]["fields"]
        assert (data["opIndex"], data["elementCount"], data["upserted"], data["deleted"]) == (0, 1, 0, 0)


@pytest.mark.api
class TestSnapshotEndpoints:
    """스냅샷 API"""

    async def test_bootstrap_after_snapshot(self, api_client, project):
        # Given
        ops_url = f"{BASE}/projects/{project.id}/ops"
        await api_client.post(ops_url, json=create_body("a"), headers=as_user(OWNER_ID))
        created = await api_client.post(f"{BASE}/projects/{project.id}/snapshot", headers=as_user(OWNER_ID))
        await api_client.post(ops_url, json=create_body("b"), headers=as_user(OWNER_ID))

        # When
        response = await api_client.get(f"{BASE}/projects/{project.id}/snapshot", headers=as_user(VIEWER_ID))

        # Then
        assert created.status_code == 201
        assert created.json()["data"]["opIndex"] == 0
        data = response.json()["data"]
        assert data["fromOp"] == 1
        assert list(data["snapshot"]["elements"]) == ["a"]
        assert [op["opIndex"] for op in data["ops"]] == [1]

    async def test_snapshot_of_empty_project_is_409(self, api_client, project):
        response = await api_client.post(f"{BASE}/projects/{project.id}/snapshot", headers=as_user(OWNER_ID))

        assert response.status_code == 409

    async def test_current_slot(self, api_client, project):
        # Given
        url = f"{BASE}/projects/{project.id}/snapshot/current"
        missing = await api_client.get(url, headers=as_user(VIEWER_ID))

        # When
        saved = await api_client.put(
            url,
            json={"elements": {"a": {"id": "a", "type": "text", "x": 1.0, "y": 2.0}}},
            headers=as_user(EDITOR_ID),
        )
        loaded = await api_client.get(url, headers=as_user(VIEWER_ID))

        # Then
        assert missing.status_code == 404
        assert saved.status_code == 200
        assert loaded.json()["data"]["opIndex"] == -1
        assert loaded.json()["data"]["elements"]["a"]["type"] == "text"


@pytest.mark.api
class TestMediaAndWorkerEndpoints:
    """미디어 등록과 워커 수동 실행"""

    async def test_register_and_get_media(self, api_client, project):
        # When
        created = await api_client.post(
            f"{BASE}/media",
            json={"url": "/uploads/a.png", "origin": "upload", "projectId": project.id},
            headers=as_user(EDITOR_ID),
        )
        media_id = created.json()["data"]["id"]
        fetched = await api_client.get(f"{BASE}/media/{media_id}", headers=as_user(VIEWER_ID))

        # Then
        assert created.status_code == 201
        assert fetched.json()["data"]["referencedByCount"] == 0
        assert fetched.json()["data"]["unreferencedSince"] is not None

    async def test_viewer_cannot_register_project_media(self, api_client, project):
        response = await api_client.post(
            f"{BASE}/media",
            json={"url": "/uploads/a.png", "projectId": project.id},
            headers=as_user(VIEWER_ID),
        )

        assert response.status_code == 403

    async def test_missing_media_is_404(self, api_client):
        response = await api_client.get(f"{BASE}/media/missing", headers=as_user(OWNER_ID))

        assert response.status_code == 404

    async def test_snapshot_worker_trigger(self, api_client, project):
        # Given
        await api_client.post(
            f"{BASE}/projects/{project.id}/ops", json=create_body("a"), headers=as_user(OWNER_ID),
        )

        # When
        response = await api_client.post(
            f"{BASE}/workers/snapshot", params={"projectId": project.id}, headers=as_user(EDITOR_ID),
        )

        # Then
        assert response.status_code == 200
        assert response.json()["data"]["reason"] == "threshold_not_reached"

    async def test_media_gc_trigger_defaults_to_dry_run(self, api_client, clock, project):
        # Given
        created = await api_client.post(
            f"{BASE}/media", json={"url": "/uploads/old.png", "projectId": project.id}, headers=as_user(OWNER_ID),
        )
        media_id = created.json()["data"]["id"]
        clock.advance(days=30)

        # When
        response = await api_client.post(
            f"{BASE}/workers/media-gc", params={"mediaId": media_id}, headers=as_user(EDITOR_ID),
        )
        still_there = await api_client.get(f"{BASE}/media/{media_id}", headers=as_user(OWNER_ID))

        # Then
        assert response.json()["data"] == {"mediaId": media_id, "deleted": False, "dryRun": True, "reason": "dry_run"}
        assert still_there.status_code == 200

    async def test_media_gc_trigger_rejects_non_collaborator(self, api_client, clock, project):
        """협업자가 아닌 사용자는 다른 프로젝트의 미디어를 지울 수 없다"""
        # Given
        created = await api_client.post(
            f"{BASE}/media", json={"url": "/uploads/old.png", "projectId": project.id}, headers=as_user(EDITOR_ID),
        )
        media_id = created.json()["data"]["id"]
        clock.advance(days=30)

        # When
        response = await api_client.post(
            f"{BASE}/workers/media-gc",
            params={"mediaId": media_id, "dryRun": "false"},
            headers=as_user(STRANGER_ID),
        )
        still_there = await api_client.get(f"{BASE}/media/{media_id}", headers=as_user(OWNER_ID))

        # Then
        assert response.status_code == 403
        assert still_there.status_code == 200

    async def test_media_gc_trigger_rejects_viewer(self, api_client, project):
        # Given
        created = await api_client.post(
            f"{BASE}/media", json={"url": "/uploads/a.png", "projectId": project.id}, headers=as_user(EDITOR_ID),
        )

        # When
        response = await api_client.post(
            f"{BASE}/workers/media-gc",
            params={"mediaId": created.json()["data"]["id"], "dryRun": "false"},
            headers=as_user(VIEWER_ID),
        )

        # Then
        assert response.status_code == 403

    async def test_media_gc_trigger_unscoped_media_requires_admin(self, api_client, monkeypatch):
        """projectId 없는 미디어는 WORKER_ADMIN_USER_IDS에 있는 사용자만 실행"""
        from canvas_app.core.config import settings

        # Given
        monkeypatch.setattr(settings, "WORKER_ADMIN_USER_IDS", ["admin-1"])
        created = await api_client.post(f"{BASE}/media", json={"url": "/uploads/free.png"}, headers=as_user(OWNER_ID))
        media_id = created.json()["data"]["id"]

        # When
        denied = await api_client.post(f"{BASE}/workers/media-gc", params={"mediaId": media_id}, headers=as_user(OWNER_ID))
        allowed = await api_client.post(f"{BASE}/workers/media-gc", params={"mediaId": media_id}, headers=as_user("admin-1"))

        # Then
        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["data"]["dryRun"] is True

    async def test_media_gc_trigger_missing_media_is_404(self, api_client):
        response = await api_client.post(
            f"{BASE}/workers/media-gc", params={"mediaId": "missing"}, headers=as_user(OWNER_ID),
        )

        assert response.status_code == 404
