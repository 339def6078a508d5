"""
스냅샷 관리 - 빠른 재로드를 위한 요소 상태 체크포인트

스냅샷은 읽기 경로 최적화일 뿐이며 op 로그를 줄이거나 압축하지 않는다.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.core.config import settings
from canvas_app.db.models.snapshot import CanvasSnapshot, CURRENT_SNAPSHOT_KEY, CURRENT_SNAPSHOT_INDEX
from canvas_app.models.canvas_models import SnapshotData, SnapshotWorkerResult
from canvas_app.repositories.project import ProjectRepository
from canvas_app.repositories.snapshot import SnapshotRepository
from canvas_app.services.logging_service import logging_service
from canvas_app.services.op_sequencer import OpSequencer
from canvas_app.services.state_materializer import apply
from canvas_app.utils.clock import Clock, ensure_utc, system_clock
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)

Elements = Dict[str, Dict[str, Any]]


@dataclass
class SnapshotWorkerConfig:
    max_ops_since_snapshot: int = 100
    max_hours_since_snapshot: float = 24.0
    batch_size: int = 50

    @classmethod
    def from_settings(cls) -> "SnapshotWorkerConfig":
        return cls(
            max_ops_since_snapshot=settings.SNAPSHOT_MAX_OPS,
            max_hours_since_snapshot=settings.SNAPSHOT_MAX_HOURS,
            batch_size=settings.SNAPSHOT_BATCH_SIZE,
        )


@dataclass
class ReconstructedState:
    elements: Elements
    op_index: int
    snapshot_op_index: Optional[int] = None


def snapshot_to_data(snapshot: CanvasSnapshot) -> SnapshotData:
    return SnapshotData(
        project_id=snapshot.project_id,
        op_index=snapshot.snapshot_op_index,
        elements=snapshot.elements or {},
        format_version=snapshot.format_version,
        element_count=snapshot.element_count,
        created_by=snapshot.created_by,
        created_at=ensure_utc(snapshot.created_at),
    )


class SnapshotManager:
    """스냅샷 저장/조회와 로그 재구성"""

    def __init__(self, db_session: AsyncSession, clock: Clock = system_clock, sequencer: Optional[OpSequencer] = None):
        self.db = db_session
        self.clock = clock
        self.snapshots = SnapshotRepository(db_session)
        self.projects = ProjectRepository(db_session)
        self.sequencer = sequencer or OpSequencer(db_session, clock=clock)

    async def save(
        self,
        project_id: str,
        elements: Elements,
        at_op_index: int,
        created_by: Optional[str] = None,
    ) -> SnapshotData:
        """op_index 시점 스냅샷 저장 (프로젝트의 마지막 스냅샷 위치도 갱신)"""
        if at_op_index < 0:
            raise ValueError("스냅샷 op_index는 0 이상이어야 합니다")

        now = self.clock.now()
        snapshot = await self.snapshots.upsert(
            project_id, str(at_op_index), at_op_index, elements, now, created_by=created_by,
        )
        await self.projects.mark_snapshot(project_id, at_op_index, now)
        await self.db.commit()

        logger.info("스냅샷 저장", context={
            "project_id": project_id,
            "op_index": at_op_index,
            "element_count": len(elements),
        })
        return snapshot_to_data(snapshot)

    async def save_current(self, project_id: str, elements: Elements, created_by: Optional[str] = None) -> SnapshotData:
        """인덱스 없는 "current" 슬롯 저장"""
        snapshot = await self.snapshots.upsert(
            project_id, CURRENT_SNAPSHOT_KEY, CURRENT_SNAPSHOT_INDEX, elements, self.clock.now(), created_by=created_by,
        )
        await self.db.commit()
        return snapshot_to_data(snapshot)

    async def load(self, project_id: str, op_index: int) -> Optional[SnapshotData]:
        """op_index 이하에서 가장 가까운 스냅샷"""
        snapshot = await self.snapshots.get_at_or_before(project_id, op_index)
        return snapshot_to_data(snapshot) if snapshot else None

    async def load_latest(self, project_id: str) -> Optional[SnapshotData]:
        snapshot = await self.snapshots.get_latest(project_id)
        return snapshot_to_data(snapshot) if snapshot else None

    async def load_current(self, project_id: str) -> Optional[SnapshotData]:
        snapshot = await self.snapshots.get_current(project_id)
        return snapshot_to_data(snapshot) if snapshot else None

    async def reconstruct(self, project_id: str, up_to: Optional[int] = None) -> ReconstructedState:
        """가장 가까운 스냅샷 + 이후 작업 재적용"""
        snapshot = await self.load(project_id, up_to) if up_to is not None else await self.load_latest(project_id)

        elements: Elements = dict(snapshot.elements) if snapshot else {}
        last_index = snapshot.op_index if snapshot else -1

        async for op in self.sequencer.iter_since(project_id, last_index + 1, up_to=up_to):
            elements = apply(elements, op)
            last_index = op.op_index

        return ReconstructedState(
            elements=elements,
            op_index=last_index,
            snapshot_op_index=snapshot.op_index if snapshot else None,
        )

    async def create_snapshot_for_project(
        self,
        project_id: str,
        config: Optional[SnapshotWorkerConfig] = None,
    ) -> SnapshotWorkerResult:
        """새 작업이 있고 작업 수 또는 경과 시간 기준을 넘으면 스냅샷 생성"""
        config = config or SnapshotWorkerConfig.from_settings()

        project = await self.projects.get(project_id)
        if project is None:
            return SnapshotWorkerResult(project_id=project_id, created=False, reason="not_found")

        current_index = await self.sequencer.current_index(project_id)
        last_snapshot_index = project.last_snapshot_op_index
        if last_snapshot_index is None:
            ops_since = current_index + 1
        else:
            ops_since = current_index - last_snapshot_index

        if ops_since <= 0:
            return SnapshotWorkerResult(project_id=project_id, created=False, reason="no_new_ops")

        since = ensure_utc(project.last_snapshot_at or project.created_at)
        hours_since = (self.clock.now() - since).total_seconds() / 3600

        if ops_since < config.max_ops_since_snapshot and hours_since < config.max_hours_since_snapshot:
            return SnapshotWorkerResult(project_id=project_id, created=False, reason="threshold_not_reached")

        state = await self.reconstruct(project_id, up_to=current_index)
        await self.save(project_id, state.elements, state.op_index, created_by="snapshot_worker")

        return SnapshotWorkerResult(project_id=project_id, created=True, op_index=state.op_index)

    async def process_snapshots(self, config: Optional[SnapshotWorkerConfig] = None) -> List[SnapshotWorkerResult]:
        """최근 활동한 프로젝트 한 배치 처리"""
        config = config or SnapshotWorkerConfig.from_settings()
        project_ids = await self.sequencer.ops.list_active_projects(limit=config.batch_size)

        results: List[SnapshotWorkerResult] = []
        failed = 0
        for project_id in project_ids:
            try:
                results.append(await self.create_snapshot_for_project(project_id, config))
            except Exception as e:
                failed += 1
                await self.db.rollback()
                logging_service.log_error(e, context="snapshot_worker", project_id=project_id)

        logging_service.log_worker_run(
            "snapshot",
            processed=len(project_ids),
            succeeded=sum(1 for result in results if result.created),
            failed=failed,
        )
        return results
