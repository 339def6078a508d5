"""
미디어 참조 카운트와 미참조 미디어 정리(GC)

- 참조 수는 요소 변경 전/후의 meta.mediaId 차이에서 도출한다 (재시도된 op가 이중 차감하지 않도록).
- 차감은 0에서 멈추며 예외 대신 경고 로그를 남긴다.
- 참조 수가 0이 된 뒤 유예 기간(기본 7일)이 지나야 삭제 후보가 된다.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.core.config import settings
from canvas_app.core.exceptions import ResourceNotFoundError
from canvas_app.db.models.media import CanvasMedia
from canvas_app.models.canvas_models import MediaCreate, MediaData, MediaGCResult
from canvas_app.repositories.media import MediaRepository
from canvas_app.services.blob_storage import BlobStorage, LocalBlobStorage
from canvas_app.services.logging_service import logging_service
from canvas_app.utils.clock import Clock, ensure_utc, system_clock
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class MediaGCConfig:
    grace_days: float = 7.0
    batch_size: int = 100
    dry_run: bool = False

    @classmethod
    def from_settings(cls, dry_run: bool = False) -> "MediaGCConfig":
        return cls(
            grace_days=settings.MEDIA_GC_GRACE_DAYS,
            batch_size=settings.MEDIA_GC_BATCH_SIZE,
            dry_run=dry_run,
        )


def media_to_data(media: CanvasMedia) -> MediaData:
    return MediaData(
        id=media.id,
        url=media.url,
        storage_path=media.storage_path,
        origin=media.origin,
        project_id=media.project_id,
        referenced_by_count=media.referenced_by_count,
        unreferenced_since=ensure_utc(media.unreferenced_since),
        metadata=media.media_metadata,
        created_at=ensure_utc(media.created_at),
        updated_at=ensure_utc(media.updated_at),
    )


def _media_ref(element: Optional[Dict[str, Any]]) -> Optional[str]:
    if not element or not isinstance(element.get("meta"), dict):
        return None
    return element["meta"].get("mediaId") or None


class MediaGC:
    """미디어 참조 카운트 관리 및 GC"""

    def __init__(
        self,
        db_session: AsyncSession,
        clock: Clock = system_clock,
        blob_storage: Optional[BlobStorage] = None,
    ):
        self.db = db_session
        self.clock = clock
        self.media = MediaRepository(db_session)
        self.blob_storage = blob_storage or LocalBlobStorage()

    async def register_media(self, request: MediaCreate) -> CanvasMedia:
        """미디어 등록 (참조 0으로 시작)"""
        media = await self.media.create_media(
            url=request.url,
            now=self.clock.now(),
            storage_path=request.storage_path,
            origin=request.origin,
            project_id=request.project_id,
            metadata=request.metadata,
        )
        logger.info("미디어 등록", context={"media_id": media.id, "origin": media.origin})
        return media

    async def get_media(self, media_id: str) -> CanvasMedia:
        media = await self.media.get_fresh(media_id)
        if media is None:
            raise ResourceNotFoundError("미디어", media_id)
        return media

    async def increment_ref(self, media_id: str, commit: bool = False) -> bool:
        updated = await self.media.increment(media_id, self.clock.now())
        if not updated:
            logger.warning("존재하지 않는 미디어 참조 증가", context={"media_id": media_id})
        if commit:
            await self.db.commit()
        return bool(updated)

    async def decrement_ref(self, media_id: str, commit: bool = False) -> bool:
        """참조 수 -1 (0이면 변경 없이 경고)"""
        updated = await self.media.decrement(media_id, self.clock.now())
        if not updated:
            exists = await self.media.get_fresh(media_id)
            if exists is None:
                logger.warning("존재하지 않는 미디어 참조 감소", context={"media_id": media_id})
            else:
                logger.warning("참조 수가 이미 0인 미디어 - 감소 무시", context={"media_id": media_id})
        if commit:
            await self.db.commit()
        return bool(updated)

    async def apply_reference_diff(
        self,
        before: Dict[str, Dict[str, Any]],
        after: Dict[str, Dict[str, Any]],
    ) -> Dict[str, int]:
        """요소 전/후 상태에서 미디어별 순증감을 구해 반영 (커밋은 호출자 담당)"""
        delta: Counter = Counter()
        for element_id in set(before) | set(after):
            old_ref = _media_ref(before.get(element_id))
            new_ref = _media_ref(after.get(element_id))
            if old_ref == new_ref:
                continue
            if old_ref:
                delta[old_ref] -= 1
            if new_ref:
                delta[new_ref] += 1

        for media_id, change in delta.items():
            for _ in range(abs(change)):
                if change > 0:
                    await self.increment_ref(media_id)
                else:
                    await self.decrement_ref(media_id)

        return {media_id: change for media_id, change in delta.items() if change}

    async def list_unreferenced(
        self,
        older_than: Optional[timedelta] = None,
        limit: Optional[int] = None,
    ) -> List[CanvasMedia]:
        """참조 0이고 유예 기간이 지난 미디어"""
        grace = older_than if older_than is not None else timedelta(days=settings.MEDIA_GC_GRACE_DAYS)
        cutoff = self.clock.now() - grace
        return await self.media.list_unreferenced(cutoff, limit or settings.MEDIA_GC_BATCH_SIZE)

    async def delete(self, media_id: str) -> bool:
        """참조 수가 0일 때만 레코드 삭제 후 blob 정리

        조건부 삭제이므로 확인과 삭제 사이에 참조가 생기면 아무것도 지우지 않는다.
        blob 삭제 실패는 로그만 남긴다 (레코드는 이미 커밋됨).
        """
        media = await self.media.get_fresh(media_id)
        if media is None:
            return False
        storage_path = media.storage_path

        deleted = await self.media.delete_media(media_id)
        await self.db.commit()
        if not deleted:
            logger.info("참조 중인 미디어는 삭제하지 않음", context={"media_id": media_id})
            return False

        if storage_path:
            try:
                await self.blob_storage.delete(storage_path)
            except Exception as e:
                logging_service.log_error(
                    e,
                    context="media_blob_delete",
                    media_id=media_id,
                    storage_path=storage_path,
                )

        logger.info("미디어 삭제 완료", context={"media_id": media_id})
        return True

    async def gc_media_item(self, media_id: str, config: Optional[MediaGCConfig] = None) -> MediaGCResult:
        """단일 미디어 GC - 참조 수와 유예 기간을 다시 확인"""
        config = config or MediaGCConfig.from_settings()
        media = await self.media.get_fresh(media_id)
        if media is None:
            return MediaGCResult(media_id=media_id, deleted=False, dry_run=config.dry_run, reason="not_found")

        if media.referenced_by_count > 0:
            return MediaGCResult(media_id=media_id, deleted=False, dry_run=config.dry_run, reason="referenced")

        unreferenced_since = ensure_utc(media.unreferenced_since)
        cutoff = self.clock.now() - timedelta(days=config.grace_days)
        if unreferenced_since is None or unreferenced_since >= cutoff:
            return MediaGCResult(media_id=media_id, deleted=False, dry_run=config.dry_run, reason="within_grace_period")

        if config.dry_run:
            logger.info("미디어 GC dry run - 삭제 대상", context={"media_id": media_id})
            return MediaGCResult(media_id=media_id, deleted=False, dry_run=True, reason="dry_run")

        deleted = await self.delete(media_id)
        return MediaGCResult(media_id=media_id, deleted=deleted, dry_run=False, reason=None if deleted else "referenced")

    async def process_media_gc(self, config: Optional[MediaGCConfig] = None) -> List[MediaGCResult]:
        """미참조 미디어 한 배치 정리"""
        config = config or MediaGCConfig.from_settings()
        candidates = await self.list_unreferenced(timedelta(days=config.grace_days), config.batch_size)

        results: List[MediaGCResult] = []
        failed = 0
        for media in candidates:
            media_id = media.id
            try:
                results.append(await self.gc_media_item(media_id, config))
            except Exception as e:
                failed += 1
                await self.db.rollback()
                logging_service.log_error(e, context="media_gc", media_id=media_id)

        logging_service.log_worker_run(
            "media_gc",
            processed=len(candidates),
            succeeded=sum(1 for result in results if result.deleted),
            failed=failed,
            dry_run=config.dry_run,
        )
        return results
