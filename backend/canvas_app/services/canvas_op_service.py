"""
Canvas 작업 처리 서비스

요청 흐름: 접근 확인 -> 적용 전 상태 기록/역연산 계산 -> 시퀀싱 -> 요소 반영
요소 반영 실패는 요청을 실패시키지 않고 운영자 채널에 기록한다.
"""

import time
import uuid
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.core.exceptions import ConflictError, ResourceNotFoundError, ValidationError
from canvas_app.db.models.project import ProjectRole
from canvas_app.models.canvas_models import (
    CanvasOpData,
    OpAppendResult,
    OpDraft,
    OpType,
    ReconcileResult,
    SnapshotBootstrap,
    SnapshotData,
)
from canvas_app.services.access_guard import AccessGuard
from canvas_app.services.inverse_computer import capture_prior_state, invert
from canvas_app.services.logging_service import logging_service
from canvas_app.services.media_gc import MediaGC
from canvas_app.services.op_sequencer import OpSequencer, op_to_data
from canvas_app.services.snapshot_manager import SnapshotManager
from canvas_app.services.state_materializer import StateMaterializer
from canvas_app.utils.clock import Clock, system_clock
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)


def normalize_draft(draft: OpDraft, actor_id: str) -> OpDraft:
    """시퀀싱 전에 결정적이어야 하는 값 채우기

    - connect: connectorId가 없으면 connector-<uuid> 부여
    - select/deselect: selectedBy가 없으면 요청자
    """
    op_type = OpType(draft.type)
    data = dict(draft.data)
    element_id = draft.element_id

    if op_type == OpType.CONNECT:
        connector_id = data.get("connectorId") or element_id or f"connector-{uuid.uuid4()}"
        data["connectorId"] = connector_id
        element_id = connector_id
    elif op_type in (OpType.SELECT, OpType.DESELECT):
        data.setdefault("selectedBy", actor_id)
        if not data["selectedBy"]:
            data["selectedBy"] = actor_id
    elif op_type in (OpType.CREATE, OpType.GROUP) and not element_id and not draft.element_ids:
        element = data.get("element")
        if isinstance(element, dict) and element.get("id"):
            element_id = element["id"]

    return draft.model_copy(update={"data": data, "element_id": element_id})


class CanvasOpService:
    """작업 append/조회/undo/reconcile"""

    def __init__(
        self,
        db_session: AsyncSession,
        clock: Clock = system_clock,
        sequencer: Optional[OpSequencer] = None,
        media_gc: Optional[MediaGC] = None,
    ):
        self.db = db_session
        self.clock = clock
        self.guard = AccessGuard(db_session)
        self.sequencer = sequencer or OpSequencer(db_session, clock=clock)
        self.media_gc = media_gc or MediaGC(db_session, clock=clock)
        self.materializer = StateMaterializer(db_session, clock=clock, media_gc=self.media_gc)
        self.snapshots = SnapshotManager(db_session, clock=clock, sequencer=self.sequencer)

    async def _sequence_and_materialize(self, project_id: str, actor_id: str, draft: OpDraft) -> OpAppendResult:
        if draft.request_id:
            existing = await self.sequencer.find_by_idempotency_key(project_id, draft.request_id)
            if existing:
                return OpAppendResult(op_id=existing.id, op_index=existing.op_index, duplicate=True)

        draft = normalize_draft(draft, actor_id)
        prior = await self.materializer.load_affected(project_id, draft)
        draft = capture_prior_state(prior, draft)
        inverse = invert(draft)

        start_time = time.time()
        result = await self.sequencer.append(
            project_id,
            actor_id,
            draft,
            inverse=inverse.to_wire() if inverse else None,
        )
        if result.duplicate:
            return result

        try:
            await self.materializer.materialize(project_id, draft)
        except Exception as e:
            logging_service.log_materialization_failure(
                project_id=project_id,
                op_id=result.op_id,
                op_index=result.op_index,
                op_type=OpType(draft.type).value,
                error=e,
            )

        logging_service.log_performance_metric(
            "canvas_op_append",
            (time.time() - start_time) * 1000,
            context={"project_id": project_id, "op_type": OpType(draft.type).value},
        )
        return result

    async def append_op(self, project_id: str, actor_id: str, draft: OpDraft) -> OpAppendResult:
        """작업 추가 (editor 이상)"""
        await self.guard.can_access(project_id, actor_id, ProjectRole.EDITOR)
        return await self._sequence_and_materialize(project_id, actor_id, draft)

    async def list_ops(
        self,
        project_id: str,
        actor_id: str,
        from_op: int = 0,
        limit: Optional[int] = None,
    ) -> List[CanvasOpData]:
        """from_op 이후 작업 조회 (viewer 이상)"""
        await self.guard.can_access(project_id, actor_id, ProjectRole.VIEWER)
        return await self.sequencer.list_since(project_id, from_op, limit)

    async def undo_op(
        self,
        project_id: str,
        actor_id: str,
        op_id: str,
        request_id: Optional[str] = None,
    ) -> OpAppendResult:
        """작업의 역연산을 새 작업으로 추가 (로그는 다시 쓰지 않는다)"""
        await self.guard.can_access(project_id, actor_id, ProjectRole.EDITOR)

        op = await self.sequencer.ops.get_op(project_id, op_id)
        if op is None:
            raise ResourceNotFoundError("작업", op_id)

        if op.inverse:
            inverse = OpDraft.model_validate(op.inverse)
        else:
            inverse = invert(op_to_data(op))
        if inverse is None:
            raise ValidationError("되돌릴 수 없는 작업입니다 (적용 전 상태가 기록되지 않음)", field="opId")

        if request_id:
            inverse = inverse.model_copy(update={"request_id": request_id})

        logger.info("작업 되돌리기", context={
            "project_id": project_id,
            "op_id": op_id,
            "inverse_type": OpType(inverse.type).value,
        })
        return await self._sequence_and_materialize(project_id, actor_id, inverse)

    async def get_elements(self, project_id: str, actor_id: str) -> Dict[str, Dict[str, Any]]:
        """현재 요소 projection (viewer 이상)"""
        await self.guard.can_access(project_id, actor_id, ProjectRole.VIEWER)
        return await self.materializer.elements.list_all(project_id)

    async def reconcile(self, project_id: str, actor_id: str) -> ReconcileResult:
        """로그에서 projection 재구성 (editor 이상)"""
        await self.guard.can_access(project_id, actor_id, ProjectRole.EDITOR)
        state = await self.snapshots.reconstruct(project_id)
        result = await self.materializer.reconcile(project_id, state.elements)
        return ReconcileResult(
            project_id=project_id,
            op_index=state.op_index,
            element_count=len(state.elements),
            upserted=result.upserted,
            deleted=result.deleted,
        )

    async def bootstrap(self, project_id: str, actor_id: str, limit: Optional[int] = None) -> SnapshotBootstrap:
        """초기 로드: 최신 스냅샷 + 이후 작업"""
        await self.guard.can_access(project_id, actor_id, ProjectRole.VIEWER)
        snapshot = await self.snapshots.load_latest(project_id)
        from_op = snapshot.op_index + 1 if snapshot is not None else 0
        ops = await self.sequencer.list_since(project_id, from_op, limit)
        return SnapshotBootstrap(snapshot=snapshot, ops=ops, from_op=from_op)

    async def create_snapshot(self, project_id: str, actor_id: str) -> SnapshotData:
        """현재 op_index 시점 스냅샷 생성 (editor 이상)"""
        await self.guard.can_access(project_id, actor_id, ProjectRole.EDITOR)
        current_index = await self.sequencer.current_index(project_id)
        if current_index < 0:
            raise ConflictError("작업이 없는 프로젝트는 스냅샷을 만들 수 없습니다")

        state = await self.snapshots.reconstruct(project_id, up_to=current_index)
        return await self.snapshots.save(project_id, state.elements, state.op_index, created_by=actor_id)

    async def get_current_snapshot(self, project_id: str, actor_id: str) -> SnapshotData:
        await self.guard.can_access(project_id, actor_id, ProjectRole.VIEWER)
        snapshot = await self.snapshots.load_current(project_id)
        if snapshot is None:
            raise ResourceNotFoundError("스냅샷", "current")
        return snapshot

    async def save_current_snapshot(
        self,
        project_id: str,
        actor_id: str,
        elements: Dict[str, Dict[str, Any]],
    ) -> SnapshotData:
        await self.guard.can_access(project_id, actor_id, ProjectRole.EDITOR)
        return await self.snapshots.save_current(project_id, elements, created_by=actor_id)
