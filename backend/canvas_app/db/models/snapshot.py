# Canvas 스냅샷 데이터베이스 모델

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Index

from canvas_app.db.base import Base, JSONType

# 인덱스 없는 "항상 최신" 스냅샷의 고정 키와 센티넬 인덱스
CURRENT_SNAPSHOT_KEY = "current"
CURRENT_SNAPSHOT_INDEX = -1
SNAPSHOT_FORMAT_VERSION = "1.0"


class CanvasSnapshot(Base):
    """
    특정 op_index 시점의 요소 전체 상태

    새 스냅샷이 이전 것을 대체하지만 삭제하지는 않는다.
    """
    __tablename__ = "canvas_snapshots"

    project_id = Column(String(64), ForeignKey("canvas_projects.id", ondelete="CASCADE"), primary_key=True)
    snapshot_key = Column(String(32), primary_key=True)  # 십진수 op_index 또는 "current"

    snapshot_op_index = Column(Integer, nullable=False)
    elements = Column(JSONType, nullable=False, default=dict)  # element id -> element

    format_version = Column(String(10), nullable=False, default=SNAPSHOT_FORMAT_VERSION)
    element_count = Column(Integer, nullable=False, default=0)
    created_by = Column(String(128))
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_canvas_snapshots_project_index", "project_id", "snapshot_op_index"),
    )
