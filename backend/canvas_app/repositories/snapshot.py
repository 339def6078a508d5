from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.repositories.base import BaseRepository
from canvas_app.db.models.snapshot import CanvasSnapshot, CURRENT_SNAPSHOT_KEY, SNAPSHOT_FORMAT_VERSION


class SnapshotRepository(BaseRepository[CanvasSnapshot]):
    """Canvas 스냅샷 Repository"""

    def __init__(self, session: AsyncSession):
        super().__init__(CanvasSnapshot, session)

    async def upsert(
        self,
        project_id: str,
        snapshot_key: str,
        op_index: int,
        elements: Dict[str, Dict[str, Any]],
        now: datetime,
        created_by: Optional[str] = None,
    ) -> CanvasSnapshot:
        """같은 키의 스냅샷이 있으면 덮어쓴다 (flush만 수행)"""
        snapshot = await self.session.get(CanvasSnapshot, (project_id, snapshot_key))
        if snapshot is None:
            snapshot = CanvasSnapshot(project_id=project_id, snapshot_key=snapshot_key)
            self.session.add(snapshot)

        snapshot.snapshot_op_index = op_index
        snapshot.elements = elements
        snapshot.element_count = len(elements)
        snapshot.format_version = SNAPSHOT_FORMAT_VERSION
        snapshot.created_by = created_by
        snapshot.created_at = now
        await self.session.flush()
        return snapshot

    async def get_at_or_before(self, project_id: str, op_index: int) -> Optional[CanvasSnapshot]:
        """op_index 이하에서 가장 가까운 인덱스 스냅샷"""
        result = await self.session.execute(
            select(CanvasSnapshot)
            .where(
                CanvasSnapshot.project_id == project_id,
                CanvasSnapshot.snapshot_key != CURRENT_SNAPSHOT_KEY,
                CanvasSnapshot.snapshot_op_index <= op_index,
            )
            .order_by(CanvasSnapshot.snapshot_op_index.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest(self, project_id: str) -> Optional[CanvasSnapshot]:
        result = await self.session.execute(
            select(CanvasSnapshot)
            .where(
                CanvasSnapshot.project_id == project_id,
                CanvasSnapshot.snapshot_key != CURRENT_SNAPSHOT_KEY,
            )
            .order_by(CanvasSnapshot.snapshot_op_index.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_current(self, project_id: str) -> Optional[CanvasSnapshot]:
        return await self.session.get(CanvasSnapshot, (project_id, CURRENT_SNAPSHOT_KEY))
