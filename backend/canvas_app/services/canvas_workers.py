"""
주기 실행 백그라운드 워커 (스냅샷, 미디어 GC)

CANVAS_WORKERS_ENABLED일 때 애플리케이션 lifespan에서 시작된다.
매 실행마다 새 DB 세션을 연다.
"""

import asyncio
from typing import Callable, List, Optional
from sqlalchemy.ext.asyncio import async_sessionmaker

from canvas_app.core.config import settings
from canvas_app.services.media_gc import MediaGC, MediaGCConfig
from canvas_app.services.snapshot_manager import SnapshotManager, SnapshotWorkerConfig
from canvas_app.utils.clock import Clock, system_clock
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)


class CanvasWorkers:
    """스냅샷/미디어 GC 주기 실행기"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock = system_clock,
        snapshot_interval_seconds: Optional[float] = None,
        media_gc_interval_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.snapshot_interval_seconds = snapshot_interval_seconds or settings.SNAPSHOT_INTERVAL_SECONDS
        self.media_gc_interval_seconds = media_gc_interval_seconds or settings.MEDIA_GC_INTERVAL_SECONDS
        self.is_running = False
        self.tasks: List[asyncio.Task] = []

    async def run_snapshot_once(self, config: Optional[SnapshotWorkerConfig] = None):
        async with self.session_factory() as session:
            return await SnapshotManager(session, clock=self.clock).process_snapshots(config)

    async def run_media_gc_once(self, config: Optional[MediaGCConfig] = None):
        async with self.session_factory() as session:
            return await MediaGC(session, clock=self.clock).process_media_gc(config)

    def start(self):
        """워커 시작"""
        if self.is_running:
            return
        self.is_running = True
        self.tasks = [
            asyncio.create_task(self._loop("snapshot", self.run_snapshot_once, self.snapshot_interval_seconds)),
            asyncio.create_task(self._loop("media_gc", self.run_media_gc_once, self.media_gc_interval_seconds)),
        ]
        logger.info("Canvas 워커 시작됨", context={
            "snapshot_interval_seconds": self.snapshot_interval_seconds,
            "media_gc_interval_seconds": self.media_gc_interval_seconds,
        })

    async def stop(self):
        """워커 중지"""
        self.is_running = False
        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []
        logger.info("Canvas 워커 중지됨")

    async def _loop(self, name: str, run_once: Callable, interval_seconds: float):
        while self.is_running:
            try:
                await run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{name} 워커 실행 오류: {str(e)}", exc_info=e)
            await asyncio.sleep(interval_seconds)
