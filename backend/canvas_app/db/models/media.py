# Canvas 미디어 데이터베이스 모델

from sqlalchemy import Column, String, DateTime, Integer, Text, Index, CheckConstraint
import enum
import uuid

from canvas_app.db.base import Base, JSONType


class MediaOrigin(str, enum.Enum):
    """미디어 출처"""
    CANVAS = "canvas"      # 캔버스에서 생성
    UPLOAD = "upload"      # 사용자 업로드
    IMPORTED = "imported"  # 외부 라이브러리에서 가져옴


class CanvasMedia(Base):
    """
    요소가 참조하는 저장된 blob (이미지/비디오)

    referenced_by_count는 원자적 UPDATE로만 변경되며 0 미만이 되지 않는다.
    """
    __tablename__ = "canvas_media"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    url = Column(Text, nullable=False)
    storage_path = Column(Text)
    origin = Column(String(20), nullable=False, default=MediaOrigin.CANVAS.value)
    project_id = Column(String(64), nullable=True, index=True)

    referenced_by_count = Column(Integer, nullable=False, default=0)
    # 참조 수가 마지막으로 0이 된 시각 (참조 중이면 NULL)
    unreferenced_since = Column(DateTime(timezone=True), nullable=True)

    # width, height, duration, format, size
    media_metadata = Column("metadata", JSONType)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("referenced_by_count >= 0", name="ck_canvas_media_refcount_non_negative"),
        Index("ix_canvas_media_refcount", "referenced_by_count", "unreferenced_since"),
    )
