from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.repositories.base import BaseRepository
from canvas_app.db.models.project import CanvasProject, ProjectCollaborator, ProjectRole
from canvas_app.db.models.operation import CanvasOp, CanvasOpCounter
from canvas_app.db.models.element import CanvasElement
from canvas_app.db.models.snapshot import CanvasSnapshot


class ProjectRepository(BaseRepository[CanvasProject]):
    """Canvas 프로젝트 Repository"""

    def __init__(self, session: AsyncSession):
        super().__init__(CanvasProject, session)

    async def list_for_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 20
    ) -> List[CanvasProject]:
        """사용자가 소유하거나 협업 중인 프로젝트 목록"""
        member_projects = select(ProjectCollaborator.project_id).where(
            ProjectCollaborator.user_id == user_id
        )
        query = (
            select(CanvasProject)
            .where(or_(CanvasProject.owner_id == user_id, CanvasProject.id.in_(member_projects)))
            .order_by(CanvasProject.updated_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_project(
        self,
        owner_id: str,
        name: str,
        now: datetime,
        description: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None
    ) -> CanvasProject:
        """새 프로젝트 생성 (소유자는 협업자 목록에도 owner로 기록)"""
        project = CanvasProject(
            owner_id=owner_id,
            name=name,
            description=description,
            settings=settings or {},
            created_at=now,
            updated_at=now,
        )
        project.collaborators.append(
            ProjectCollaborator(user_id=owner_id, role=ProjectRole.OWNER.value, joined_at=now)
        )
        self.session.add(project)
        await self.session.commit()
        return project

    async def get_member_role(self, project_id: str, user_id: str) -> Optional[str]:
        """협업자 목록상의 역할 (없으면 None)"""
        result = await self.session.execute(
            select(ProjectCollaborator.role).where(
                ProjectCollaborator.project_id == project_id,
                ProjectCollaborator.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_collaborator(
        self,
        project: CanvasProject,
        user_id: str,
        role: str,
        now: datetime
    ) -> ProjectCollaborator:
        """협업자 추가 또는 역할 변경"""
        for collaborator in project.collaborators:
            if collaborator.user_id == user_id:
                collaborator.role = role
                break
        else:
            collaborator = ProjectCollaborator(user_id=user_id, role=role, joined_at=now)
            project.collaborators.append(collaborator)

        project.updated_at = now
        await self.session.commit()
        return collaborator

    async def mark_snapshot(self, project_id: str, op_index: int, at: datetime) -> None:
        """마지막 스냅샷 위치 기록 (커밋은 호출자 담당)"""
        project = await self.get(project_id)
        if project is None:
            return
        project.last_snapshot_op_index = op_index
        project.last_snapshot_at = at
        await self.session.flush()

    async def delete_cascade(self, project_id: str) -> None:
        """프로젝트와 하위 데이터(작업, 카운터, 요소, 스냅샷, 협업자) 삭제

        DB 수준 ON DELETE CASCADE에 의존하지 않는다 (SQLite는 기본 비활성).
        커밋은 호출자 담당.
        """
        for model in (CanvasOp, CanvasOpCounter, CanvasElement, CanvasSnapshot, ProjectCollaborator):
            await self.session.execute(
                delete(model)
                .where(model.project_id == project_id)
                .execution_options(synchronize_session=False)
            )
        await self.session.execute(
            delete(CanvasProject)
            .where(CanvasProject.id == project_id)
            .execution_options(synchronize_session=False)
        )
