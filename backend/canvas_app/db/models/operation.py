# Canvas Op 로그 데이터베이스 모델
# 서버가 순번(op_index)을 부여하는 append-only 작업 로그

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, BigInteger, Index, UniqueConstraint
import uuid

from canvas_app.db.base import Base, JSONType


class CanvasOp(Base):
    """
    Canvas 작업 로그 (Event Sourcing)

    생성 후 수정되지 않는다. 프로젝트 삭제 시에만 함께 삭제된다.
    """
    __tablename__ = "canvas_ops"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(64), ForeignKey("canvas_projects.id", ondelete="CASCADE"), nullable=False)

    # 서버 부여 순번 (프로젝트별 0부터 연속)
    op_index = Column(Integer, nullable=False)

    op_type = Column(String(20), nullable=False)
    element_id = Column(String(128))
    element_ids = Column(JSONType)

    # 타입별 페이로드와 미리 계산된 역연산
    data = Column(JSONType, nullable=False, default=dict)
    inverse = Column(JSONType)

    actor_id = Column(String(128), nullable=False)

    # 멱등성 키 (클라이언트 requestId)
    request_id = Column(String(255))
    client_ts = Column(BigInteger)

    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "op_index", name="uq_canvas_ops_project_index"),
        UniqueConstraint("project_id", "request_id", name="uq_canvas_ops_project_request"),
        Index("ix_canvas_ops_project_index", "project_id", "op_index"),
    )


class CanvasOpCounter(Base):
    """
    프로젝트별 다음 op_index 카운터

    시퀀싱 트랜잭션 안에서만 변경된다.
    """
    __tablename__ = "canvas_op_counters"

    project_id = Column(String(64), ForeignKey("canvas_projects.id", ondelete="CASCADE"), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_canvas_op_counters_updated", "updated_at"),
    )
