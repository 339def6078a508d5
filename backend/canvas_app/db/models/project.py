# Canvas 프로젝트 데이터베이스 모델
# 협업 워크스페이스와 멤버(협업자) 정보

from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Integer, Index, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
import uuid

from canvas_app.db.base import Base, JSONType


class ProjectRole(str, enum.Enum):
    """프로젝트 멤버 역할"""
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


# 역할 계층 (숫자가 클수록 높은 권한)
ROLE_HIERARCHY = {
    ProjectRole.OWNER: 3,
    ProjectRole.EDITOR: 2,
    ProjectRole.VIEWER: 1,
}


class CanvasProject(Base):
    """
    Canvas 프로젝트 메인 테이블

    소유자는 정확히 한 명이며 협업자 목록에 없어도 전체 권한을 가진다.
    """
    __tablename__ = "canvas_projects"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(Text)
    owner_id = Column(String(128), nullable=False, index=True)

    # 표시 설정 (width, height, backgroundColor, gridEnabled ...)
    settings = Column(JSONType, default=dict)

    # 스냅샷 추적
    last_snapshot_op_index = Column(Integer, nullable=True)
    last_snapshot_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    collaborators = relationship(
        "ProjectCollaborator",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ProjectCollaborator(Base):
    """프로젝트 협업자"""
    __tablename__ = "canvas_project_collaborators"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(64), ForeignKey("canvas_projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(128), nullable=False)
    role = Column(String(20), nullable=False, default=ProjectRole.VIEWER.value)
    joined_at = Column(DateTime(timezone=True), nullable=False)

    project = relationship("CanvasProject", back_populates="collaborators")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_canvas_collaborator_project_user"),
        Index("ix_canvas_collaborator_user", "user_id"),
    )
