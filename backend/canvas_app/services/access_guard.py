"""
프로젝트 접근 권한 확인
"""

from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.core.exceptions import AuthorizationError, ResourceNotFoundError
from canvas_app.db.models.project import CanvasProject, ProjectRole, ROLE_HIERARCHY
from canvas_app.repositories.project import ProjectRepository
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    role: ProjectRole
    project: Optional[CanvasProject] = None


def role_rank(role: Optional[str]) -> int:
    if role is None:
        return 0
    try:
        return ROLE_HIERARCHY[ProjectRole(role)]
    except ValueError:
        return 0


class AccessGuard:
    """프로젝트 멤버십/역할 확인 (부작용 없음)"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.projects = ProjectRepository(db_session)

    async def resolve_role(self, project: CanvasProject, actor_id: str) -> Optional[ProjectRole]:
        """소유자는 협업자 목록과 무관하게 owner"""
        if project.owner_id == actor_id:
            return ProjectRole.OWNER

        role = await self.projects.get_member_role(project.id, actor_id)
        if role is None:
            return None
        # 소유자는 정확히 한 명 - 목록상의 owner 표기는 editor로 취급
        if role == ProjectRole.OWNER.value:
            return ProjectRole.EDITOR
        return ProjectRole(role)

    async def can_access(
        self,
        project_id: str,
        actor_id: str,
        required_role: ProjectRole = ProjectRole.VIEWER
    ) -> AccessDecision:
        """권한이 없으면 예외 (NotFound / Forbidden)"""
        project = await self.projects.get(project_id)
        if project is None:
            raise ResourceNotFoundError("프로젝트", project_id)

        role = await self.resolve_role(project, actor_id)
        if role is None:
            logger.info("프로젝트 멤버가 아닌 사용자의 접근", context={
                "project_id": project_id,
                "actor_id": actor_id,
            })
            raise AuthorizationError(
                "프로젝트 멤버가 아닙니다",
                details={"project_id": project_id, "required_role": required_role.value},
            )

        if role_rank(role.value) < role_rank(required_role.value):
            raise AuthorizationError(
                f"{required_role.value} 이상의 권한이 필요합니다",
                details={"project_id": project_id, "role": role.value, "required_role": required_role.value},
            )

        return AccessDecision(allowed=True, role=role, project=project)
