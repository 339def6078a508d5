from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update, delete, case
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.repositories.base import BaseRepository
from canvas_app.db.models.media import CanvasMedia, MediaOrigin


class MediaRepository(BaseRepository[CanvasMedia]):
    """Canvas 미디어 Repository

    참조 수는 읽기-수정-쓰기 없이 단일 UPDATE 문으로만 변경한다.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(CanvasMedia, session)

    async def get_fresh(self, media_id: str) -> Optional[CanvasMedia]:
        """identity map을 무시하고 최신 값으로 조회"""
        result = await self.session.execute(
            select(CanvasMedia)
            .where(CanvasMedia.id == media_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_media(
        self,
        url: str,
        now: datetime,
        storage_path: Optional[str] = None,
        origin: str = MediaOrigin.CANVAS.value,
        project_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CanvasMedia:
        """미디어 등록 (참조 0, 유예 기간은 등록 시각부터)"""
        return await self.create(
            url=url,
            storage_path=storage_path,
            origin=origin,
            project_id=project_id,
            media_metadata=metadata,
            referenced_by_count=0,
            unreferenced_since=now,
            created_at=now,
            updated_at=now,
        )

    async def increment(self, media_id: str, now: datetime) -> int:
        """참조 수 +1 (갱신된 행 수 반환)"""
        result = await self.session.execute(
            update(CanvasMedia)
            .where(CanvasMedia.id == media_id)
            .values(
                referenced_by_count=CanvasMedia.referenced_by_count + 1,
                unreferenced_since=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def decrement(self, media_id: str, now: datetime) -> int:
        """참조 수 -1, 0 미만으로 내려가지 않음 (갱신된 행 수 반환)"""
        result = await self.session.execute(
            update(CanvasMedia)
            .where(CanvasMedia.id == media_id, CanvasMedia.referenced_by_count > 0)
            .values(
                referenced_by_count=CanvasMedia.referenced_by_count - 1,
                unreferenced_since=case(
                    (CanvasMedia.referenced_by_count == 1, now),
                    else_=CanvasMedia.unreferenced_since,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def list_unreferenced(self, cutoff: datetime, limit: int) -> List[CanvasMedia]:
        """참조 0이고 cutoff 이전부터 참조되지 않은 미디어"""
        result = await self.session.execute(
            select(CanvasMedia)
            .where(
                CanvasMedia.referenced_by_count == 0,
                CanvasMedia.unreferenced_since.is_not(None),
                CanvasMedia.unreferenced_since < cutoff,
            )
            .order_by(CanvasMedia.unreferenced_since.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def delete_media(self, media_id: str) -> bool:
        """참조 수가 0인 레코드만 삭제 (flush만 수행, 0행이면 False)"""
        result = await self.session.execute(
            delete(CanvasMedia)
            .where(CanvasMedia.id == media_id, CanvasMedia.referenced_by_count == 0)
            .execution_options(synchronize_session="fetch")
        )
        return bool(result.rowcount)
