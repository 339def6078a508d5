"""
Op 시퀀서 - 프로젝트별 op_index 부여와 append-only 로그 기록

카운터 증가와 op 삽입은 하나의 트랜잭션(단일 커밋)으로 묶인다.
동시 append는 카운터 행의 원자적 UPDATE ... RETURNING으로 직렬화되며,
경합 오류는 내부에서 제한된 횟수만큼 재시도한다.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.core.config import settings
from canvas_app.core.exceptions import RetryableError, ServiceUnavailableError
from canvas_app.db.models.operation import CanvasOp
from canvas_app.models.canvas_models import CanvasOpData, OpAppendResult, OpDraft, OpType
from canvas_app.repositories.operation import OpRepository
from canvas_app.services.logging_service import logging_service
from canvas_app.utils.clock import Clock, ensure_utc, system_clock
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)


def op_to_data(op: CanvasOp) -> CanvasOpData:
    """DB 레코드 -> CanvasOpData"""
    return CanvasOpData(
        id=op.id,
        project_id=op.project_id,
        op_index=op.op_index,
        type=OpType(op.op_type),
        element_id=op.element_id,
        element_ids=op.element_ids,
        data=op.data or {},
        inverse=op.inverse,
        actor_id=op.actor_id,
        request_id=op.request_id,
        client_ts=op.client_ts,
        created_at=ensure_utc(op.created_at),
    )


class OpSequencer:
    """프로젝트별 총순서 부여"""

    def __init__(
        self,
        db_session: AsyncSession,
        clock: Clock = system_clock,
        max_retries: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
    ):
        self.db = db_session
        self.clock = clock
        self.ops = OpRepository(db_session)
        self.max_retries = max_retries if max_retries is not None else settings.SEQUENCER_MAX_RETRIES
        self.retry_backoff_seconds = (
            retry_backoff_seconds if retry_backoff_seconds is not None else settings.SEQUENCER_RETRY_BACKOFF_SECONDS
        )

    async def find_by_idempotency_key(self, project_id: str, request_id: str) -> Optional[CanvasOpData]:
        op = await self.ops.find_by_request_id(project_id, request_id)
        return op_to_data(op) if op else None

    async def _existing_result(self, project_id: str, request_id: Optional[str]) -> Optional[OpAppendResult]:
        if not request_id:
            return None
        op = await self.ops.find_by_request_id(project_id, request_id)
        if op is None:
            return None
        return OpAppendResult(op_id=op.id, op_index=op.op_index, duplicate=True)

    async def append(
        self,
        project_id: str,
        actor_id: str,
        draft: OpDraft,
        inverse: Optional[Dict[str, Any]] = None,
    ) -> OpAppendResult:
        """op_index를 부여하고 op를 기록 (같은 requestId 재요청은 기존 결과 반환)"""
        existing = await self._existing_result(project_id, draft.request_id)
        if existing:
            logger.info("중복 요청 - 기존 작업 반환", context={
                "project_id": project_id,
                "request_id": draft.request_id,
                "op_index": existing.op_index,
            })
            return existing

        attempt = 0
        while True:
            attempt += 1
            try:
                now = self.clock.now()
                counter_value = await self.ops.increment_counter(project_id, now)
                if counter_value is None:
                    counter_value = await self.ops.insert_counter(project_id, now)

                op = await self.ops.insert_op(
                    project_id=project_id,
                    op_index=counter_value - 1,
                    op_type=OpType(draft.type).value,
                    actor_id=actor_id,
                    data=draft.data,
                    now=now,
                    element_id=draft.element_id,
                    element_ids=draft.element_ids,
                    inverse=inverse,
                    request_id=draft.request_id,
                    client_ts=draft.client_ts,
                )
                op_id, op_index = op.id, op.op_index
                await self.db.commit()

                logger.debug("작업 시퀀싱 완료", context={
                    "project_id": project_id,
                    "op_id": op_id,
                    "op_index": op_index,
                    "op_type": OpType(draft.type).value,
                    "attempt": attempt,
                })
                return OpAppendResult(op_id=op_id, op_index=op_index)

            except (IntegrityError, OperationalError) as e:
                await self.db.rollback()

                # 같은 requestId의 동시 요청이 먼저 커밋된 경우
                existing = await self._existing_result(project_id, draft.request_id)
                if existing:
                    return existing

                if attempt >= self.max_retries:
                    logging_service.log_error(
                        e,
                        context="op_sequencer_append",
                        project_id=project_id,
                        attempts=attempt,
                    )
                    if isinstance(e, OperationalError) and e.connection_invalidated:
                        raise ServiceUnavailableError() from e
                    raise RetryableError(attempts=attempt) from e

                logger.warning("시퀀싱 경합 - 재시도", context={
                    "project_id": project_id,
                    "attempt": attempt,
                    "error_type": type(e).__name__,
                })
                await asyncio.sleep(self.retry_backoff_seconds * attempt)

    async def list_since(self, project_id: str, from_index: int = 0, limit: Optional[int] = None) -> List[CanvasOpData]:
        """from_index 이상의 작업을 오름차순으로 (limit 기본 100, 최대 OPS_MAX_LIMIT)"""
        limit = limit or settings.OPS_DEFAULT_LIMIT
        limit = max(1, min(limit, settings.OPS_MAX_LIMIT))
        ops = await self.ops.list_since(project_id, max(from_index, 0), limit)
        return [op_to_data(op) for op in ops]

    async def iter_since(
        self,
        project_id: str,
        from_index: int = 0,
        up_to: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> AsyncIterator[CanvasOpData]:
        """from_index부터 up_to(포함)까지 페이지 단위로 순회"""
        page_size = page_size or settings.OPS_MAX_LIMIT
        next_index = max(from_index, 0)
        while True:
            page = await self.list_since(project_id, next_index, page_size)
            for op in page:
                if up_to is not None and op.op_index > up_to:
                    return
                yield op
            if len(page) < page_size:
                return
            next_index = page[-1].op_index + 1

    async def current_index(self, project_id: str) -> int:
        """마지막으로 부여된 op_index (작업이 없으면 -1)"""
        value = await self.ops.get_counter_value(project_id)
        return -1 if value is None else value - 1
