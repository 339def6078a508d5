"""
프로젝트 서비스 / 접근 권한 테스트
"""

import pytest

from canvas_app.core.exceptions import AuthorizationError, ConflictError, ResourceNotFoundError, ValidationError
from canvas_app.db.models.project import ProjectCollaborator, ProjectRole
from canvas_app.models.canvas_models import CollaboratorAdd, MediaCreate, OpDraft, ProjectCreate, ProjectUpdate
from canvas_app.services.access_guard import AccessGuard, role_rank
from canvas_app.services.canvas_op_service import CanvasOpService
from canvas_app.services.media_gc import MediaGC
from canvas_app.services.project_service import ProjectService

from conftest import EDITOR_ID, OWNER_ID, STRANGER_ID, VIEWER_ID


@pytest.fixture
def service(db_session, clock):
    return ProjectService(db_session, clock=clock)


@pytest.mark.unit
def test_role_rank_order():
    assert role_rank("owner") > role_rank("editor") > role_rank("viewer") > role_rank(None)
    assert role_rank("admin") == 0


@pytest.mark.db
class TestAccessGuard:
    """역할 확인"""

    @pytest.mark.parametrize("actor_id, required, expected", [
        (OWNER_ID, ProjectRole.OWNER, ProjectRole.OWNER),
        (EDITOR_ID, ProjectRole.EDITOR, ProjectRole.EDITOR),
        (EDITOR_ID, ProjectRole.VIEWER, ProjectRole.EDITOR),
        (VIEWER_ID, ProjectRole.VIEWER, ProjectRole.VIEWER),
    ])
    async def test_allowed_roles(self, db_session, project, actor_id, required, expected):
        # When
        decision = await AccessGuard(db_session).can_access(project.id, actor_id, required)

        # Then
        assert decision.allowed is True
        assert decision.role == expected
        assert decision.project.id == project.id

    @pytest.mark.parametrize("actor_id, required", [
        (VIEWER_ID, ProjectRole.EDITOR),
        (EDITOR_ID, ProjectRole.OWNER),
        (STRANGER_ID, ProjectRole.VIEWER),
    ])
    async def test_forbidden(self, db_session, project, actor_id, required):
        with pytest.raises(AuthorizationError) as exc_info:
            await AccessGuard(db_session).can_access(project.id, actor_id, required)
        assert exc_info.value.status_code == 403

    async def test_missing_project_is_not_found(self, db_session):
        with pytest.raises(ResourceNotFoundError):
            await AccessGuard(db_session).can_access("missing", OWNER_ID)

    async def test_owner_entry_in_collaborators_is_editor(self, db_session, project, clock):
        """소유자가 아닌 사용자의 owner 표기는 editor 권한만 준다"""
        # Given
        db_session.add(ProjectCollaborator(
            project_id=project.id, user_id="imposter", role="owner", joined_at=clock.now(),
        ))
        await db_session.commit()
        guard = AccessGuard(db_session)

        # When
        decision = await guard.can_access(project.id, "imposter", ProjectRole.EDITOR)

        # Then
        assert decision.role == ProjectRole.EDITOR
        with pytest.raises(AuthorizationError):
            await guard.can_access(project.id, "imposter", ProjectRole.OWNER)


@pytest.mark.db
class TestProjectService:
    """프로젝트 CRUD"""

    async def test_create_records_owner(self, service):
        # When
        created = await service.create_project(OWNER_ID, ProjectCreate(name="보드", settings={"width": 800}))

        # Then
        assert created.owner_id == OWNER_ID
        assert created.settings == {"width": 800}
        assert [(c.user_id, c.role) for c in created.collaborators] == [(OWNER_ID, "owner")]
        assert created.last_snapshot_op_index is None

    async def test_list_includes_owned_and_shared(self, service, project):
        # Given
        await service.create_project(STRANGER_ID, ProjectCreate(name="다른 보드"))

        # When
        owned = await service.list_projects(OWNER_ID)
        shared = await service.list_projects(VIEWER_ID)
        others = await service.list_projects(STRANGER_ID)

        # Then
        assert [p.id for p in owned] == [project.id]
        assert [p.id for p in shared] == [project.id]
        assert project.id not in [p.id for p in others]

    async def test_update_merges_settings(self, service, project):
        # Given
        await service.update_project(project.id, OWNER_ID, ProjectUpdate(settings={"width": 800, "height": 600}))

        # When
        updated = await service.update_project(
            project.id, EDITOR_ID, ProjectUpdate(name="새 이름", settings={"height": 900}),
        )

        # Then
        assert updated.name == "새 이름"
        assert updated.settings == {"width": 800, "height": 900}

    async def test_viewer_cannot_update(self, service, project):
        with pytest.raises(AuthorizationError):
            await service.update_project(project.id, VIEWER_ID, ProjectUpdate(name="x"))

    async def test_only_owner_deletes(self, service, project):
        with pytest.raises(AuthorizationError):
            await service.delete_project(project.id, EDITOR_ID)

    async def test_delete_releases_media_and_removes_data(self, db_session, clock, service, project, helpers):
        # Given
        media_gc = MediaGC(db_session, clock=clock)
        media = await media_gc.register_media(MediaCreate(url="/uploads/p.png"))
        ops = CanvasOpService(db_session, clock=clock, media_gc=media_gc)
        await ops.append_op(project.id, OWNER_ID, OpDraft(
            type="create", data={"element": helpers.element("img", "image", meta={"mediaId": media.id})},
        ))
        assert (await media_gc.get_media(media.id)).referenced_by_count == 1

        # When
        await service.delete_project(project.id, OWNER_ID)

        # Then
        refreshed = await media_gc.get_media(media.id)
        assert refreshed.referenced_by_count == 0
        assert refreshed.unreferenced_since is not None
        assert await ops.sequencer.current_index(project.id) == -1
        with pytest.raises(ResourceNotFoundError):
            await service.get_project(project.id, OWNER_ID)


@pytest.mark.db
class TestCollaborators:
    """협업자 관리"""

    async def test_add_and_change_role(self, service, project):
        # When
        await service.add_collaborator(project.id, OWNER_ID, CollaboratorAdd(user_id="new-user", role="viewer"))
        changed = await service.add_collaborator(project.id, OWNER_ID, CollaboratorAdd(user_id="new-user", role="editor"))

        # Then
        assert changed.role == "editor"
        roles = {c.user_id: c.role for c in (await service.get_project(project.id, OWNER_ID)).collaborators}
        assert roles["new-user"] == "editor"

    async def test_non_owner_cannot_add(self, service, project):
        with pytest.raises(AuthorizationError):
            await service.add_collaborator(project.id, EDITOR_ID, CollaboratorAdd(user_id="x", role="viewer"))

    async def test_owner_role_cannot_be_granted(self, service, project):
        # Given - 검증을 우회한 요청
        request = CollaboratorAdd.model_construct(user_id="x", role="owner")

        with pytest.raises(ValidationError):
            await service.add_collaborator(project.id, OWNER_ID, request)

    async def test_owner_role_cannot_be_changed(self, service, project):
        with pytest.raises(ConflictError):
            await service.add_collaborator(project.id, OWNER_ID, CollaboratorAdd(user_id=OWNER_ID, role="viewer"))
