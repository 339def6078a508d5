# Canvas 요소 데이터베이스 모델
# Op 로그에서 파생되는 현재 상태 (materialized view)

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Float, Boolean, Index

from canvas_app.db.base import Base, JSONType


class CanvasElement(Base):
    """
    Canvas 요소 - 이미지, 비디오, 텍스트, 도형, 그룹, 커넥터, 3D 객체

    Op 적용의 부산물로만 생성/수정/삭제되며 언제든 로그에서 재구성할 수 있다.
    """
    __tablename__ = "canvas_elements"

    project_id = Column(String(64), ForeignKey("canvas_projects.id", ondelete="CASCADE"), primary_key=True)
    id = Column(String(128), primary_key=True)

    element_type = Column(String(20), nullable=False)

    # 공통 변환 속성
    x = Column(Float)
    y = Column(Float)
    width = Column(Float)
    height = Column(Float)
    rotation = Column(Float)
    scale_x = Column(Float)
    scale_y = Column(Float)

    # 공통 시각 속성
    opacity = Column(Float)
    visible = Column(Boolean)
    locked = Column(Boolean)
    z_index = Column(Integer)

    # 타입별 메타데이터 (mediaId, text, groupId, connectorFrom ...)
    meta = Column(JSONType)

    # 컬럼에 매핑되지 않은 나머지 속성
    attrs = Column(JSONType)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_canvas_elements_project_type", "project_id", "element_type"),
    )
