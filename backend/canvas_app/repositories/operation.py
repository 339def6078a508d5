from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.repositories.base import BaseRepository
from canvas_app.db.models.operation import CanvasOp, CanvasOpCounter


class OpRepository(BaseRepository[CanvasOp]):
    """Op 로그와 프로젝트별 카운터 Repository

    카운터 증가와 op 삽입은 flush만 하며, 하나의 커밋으로 묶는 것은 시퀀서의 몫이다.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(CanvasOp, session)

    async def get_op(self, project_id: str, op_id: str) -> Optional[CanvasOp]:
        result = await self.session.execute(
            select(CanvasOp).where(CanvasOp.project_id == project_id, CanvasOp.id == op_id)
        )
        return result.scalar_one_or_none()

    async def find_by_request_id(self, project_id: str, request_id: str) -> Optional[CanvasOp]:
        """멱등성 키로 기존 작업 조회"""
        result = await self.session.execute(
            select(CanvasOp).where(
                CanvasOp.project_id == project_id,
                CanvasOp.request_id == request_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_since(self, project_id: str, from_index: int, limit: int) -> List[CanvasOp]:
        """op_index >= from_index 구간을 오름차순으로 조회 (인덱스 범위 스캔)"""
        result = await self.session.execute(
            select(CanvasOp)
            .where(CanvasOp.project_id == project_id, CanvasOp.op_index >= from_index)
            .order_by(CanvasOp.op_index.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_counter_value(self, project_id: str) -> Optional[int]:
        """다음에 부여할 op_index (카운터가 없으면 None)"""
        result = await self.session.execute(
            select(CanvasOpCounter.value).where(CanvasOpCounter.project_id == project_id)
        )
        return result.scalar_one_or_none()

    async def increment_counter(self, project_id: str, now: datetime) -> Optional[int]:
        """카운터를 원자적으로 1 증가시키고 증가 후 값을 반환 (카운터가 없으면 None)"""
        result = await self.session.execute(
            update(CanvasOpCounter)
            .where(CanvasOpCounter.project_id == project_id)
            .values(value=CanvasOpCounter.value + 1, updated_at=now)
            .returning(CanvasOpCounter.value)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def insert_counter(self, project_id: str, now: datetime) -> int:
        """첫 작업용 카운터 생성 (값 1 = index 0 부여됨)"""
        self.session.add(CanvasOpCounter(project_id=project_id, value=1, updated_at=now))
        await self.session.flush()
        return 1

    async def insert_op(
        self,
        project_id: str,
        op_index: int,
        op_type: str,
        actor_id: str,
        data: Dict[str, Any],
        now: datetime,
        element_id: Optional[str] = None,
        element_ids: Optional[List[str]] = None,
        inverse: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
        client_ts: Optional[int] = None,
    ) -> CanvasOp:
        return await self.create(
            commit=False,
            project_id=project_id,
            op_index=op_index,
            op_type=op_type,
            element_id=element_id,
            element_ids=element_ids,
            data=data,
            inverse=inverse,
            actor_id=actor_id,
            request_id=request_id,
            client_ts=client_ts,
            created_at=now,
        )

    async def list_active_projects(self, skip: int = 0, limit: int = 50) -> List[str]:
        """최근 작업이 있었던 프로젝트 id 목록 (카운터 갱신 시각 내림차순)"""
        result = await self.session.execute(
            select(CanvasOpCounter.project_id)
            .order_by(CanvasOpCounter.updated_at.desc(), CanvasOpCounter.project_id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())
