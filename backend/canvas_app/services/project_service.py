"""
Canvas 프로젝트 관리 서비스
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.core.exceptions import ConflictError, ValidationError
from canvas_app.db.models.project import CanvasProject, ProjectRole
from canvas_app.models.canvas_models import (
    CollaboratorAdd,
    CollaboratorData,
    ProjectCreate,
    ProjectData,
    ProjectUpdate,
)
from canvas_app.repositories.element import ElementRepository
from canvas_app.repositories.project import ProjectRepository
from canvas_app.services.access_guard import AccessGuard
from canvas_app.services.media_gc import MediaGC
from canvas_app.utils.clock import Clock, ensure_utc, system_clock
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)


def project_to_data(project: CanvasProject) -> ProjectData:
    return ProjectData(
        id=project.id,
        name=project.name,
        description=project.description,
        owner_id=project.owner_id,
        collaborators=[
            CollaboratorData(user_id=c.user_id, role=c.role, joined_at=ensure_utc(c.joined_at))
            for c in project.collaborators
        ],
        settings=project.settings or {},
        last_snapshot_op_index=project.last_snapshot_op_index,
        last_snapshot_at=ensure_utc(project.last_snapshot_at),
        created_at=ensure_utc(project.created_at),
        updated_at=ensure_utc(project.updated_at),
    )


class ProjectService:
    """프로젝트 CRUD와 협업자 관리"""

    def __init__(self, db_session: AsyncSession, clock: Clock = system_clock, media_gc: Optional[MediaGC] = None):
        self.db = db_session
        self.clock = clock
        self.projects = ProjectRepository(db_session)
        self.elements = ElementRepository(db_session)
        self.guard = AccessGuard(db_session)
        self.media_gc = media_gc or MediaGC(db_session, clock=clock)

    async def create_project(self, owner_id: str, request: ProjectCreate) -> ProjectData:
        project = await self.projects.create_project(
            owner_id=owner_id,
            name=request.name,
            now=self.clock.now(),
            description=request.description,
            settings=request.settings,
        )
        logger.info("프로젝트 생성", context={"project_id": project.id, "owner_id": owner_id})
        return project_to_data(project)

    async def list_projects(self, user_id: str, skip: int = 0, limit: int = 20) -> List[ProjectData]:
        projects = await self.projects.list_for_user(user_id, skip=skip, limit=limit)
        return [project_to_data(project) for project in projects]

    async def get_project(self, project_id: str, actor_id: str) -> ProjectData:
        decision = await self.guard.can_access(project_id, actor_id, ProjectRole.VIEWER)
        return project_to_data(decision.project)

    async def update_project(self, project_id: str, actor_id: str, request: ProjectUpdate) -> ProjectData:
        """이름/설명/설정 변경 (editor 이상, settings는 얕은 병합)"""
        decision = await self.guard.can_access(project_id, actor_id, ProjectRole.EDITOR)
        project = decision.project

        if request.name is not None:
            project.name = request.name
        if request.description is not None:
            project.description = request.description
        if request.settings is not None:
            project.settings = {**(project.settings or {}), **request.settings}
        project.updated_at = self.clock.now()

        await self.db.commit()
        return project_to_data(project)

    async def delete_project(self, project_id: str, actor_id: str) -> None:
        """프로젝트 삭제 (owner 전용) - 요소가 잡고 있던 미디어 참조도 해제"""
        await self.guard.can_access(project_id, actor_id, ProjectRole.OWNER)

        elements = await self.elements.list_all(project_id)
        try:
            released = await self.media_gc.apply_reference_diff(elements, {})
            await self.projects.delete_cascade(project_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("프로젝트 삭제", context={
            "project_id": project_id,
            "element_count": len(elements),
            "released_media": len(released),
        })

    async def add_collaborator(self, project_id: str, actor_id: str, request: CollaboratorAdd) -> CollaboratorData:
        """협업자 추가/역할 변경 (owner 전용, owner 역할은 부여 불가)"""
        decision = await self.guard.can_access(project_id, actor_id, ProjectRole.OWNER)
        project = decision.project

        if request.role == ProjectRole.OWNER.value:
            raise ValidationError("owner 역할은 부여할 수 없습니다", field="role")
        if request.user_id == project.owner_id:
            raise ConflictError("소유자의 역할은 변경할 수 없습니다")

        collaborator = await self.projects.upsert_collaborator(project, request.user_id, request.role, self.clock.now())
        logger.info("협업자 추가", context={
            "project_id": project_id,
            "user_id": request.user_id,
            "role": request.role,
        })
        return CollaboratorData(
            user_id=collaborator.user_id,
            role=collaborator.role,
            joined_at=ensure_utc(collaborator.joined_at),
        )
