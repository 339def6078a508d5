"""
Canvas 작업(op) 로그 API 엔드포인트

작업 추가, 조회, 되돌리기, 요소 projection 조회와 재구성
"""

from typing import Dict, Any, Optional
from fastapi import APIRouter, Body, Depends, Query, Request, status

from canvas_app.api.deps import get_current_user, get_op_service
from canvas_app.core.responses import create_success_response
from canvas_app.models.canvas_models import OpDraft, UndoRequest
from canvas_app.services.canvas_op_service import CanvasOpService

router = APIRouter()


@router.post("/projects/{project_id}/ops", status_code=status.HTTP_201_CREATED)
async def append_op(
    request: Request,
    project_id: str,
    draft: OpDraft,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    """
    작업 추가

    같은 requestId로 재요청하면 기존 opId/opIndex를 그대로 반환한다.
    """
    result = await service.append_op(project_id, current_user["id"], draft)
    return create_success_response(
        message="중복 요청 - 기존 작업 반환" if result.duplicate else "작업이 기록되었습니다",
        data=result.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.get("/projects/{project_id}/ops")
async def list_ops(
    request: Request,
    project_id: str,
    from_op: int = Query(0, alias="fromOp", ge=0),
    limit: Optional[int] = Query(None, ge=1),
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    """fromOp 이후 작업을 opIndex 오름차순으로 조회"""
    ops = await service.list_ops(project_id, current_user["id"], from_op=from_op, limit=limit)
    return create_success_response(
        message="작업 목록 조회 완료",
        data={
            "ops": [op.model_dump(by_alias=True, mode="json") for op in ops],
            "fromOp": from_op
        },
        request_id=getattr(request.state, "request_id", None)
    )


@router.post("/projects/{project_id}/ops/{op_id}/undo", status_code=status.HTTP_201_CREATED)
async def undo_op(
    request: Request,
    project_id: str,
    op_id: str,
    body: Optional[UndoRequest] = Body(None),
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    """작업 되돌리기 - 역연산을 새 작업으로 추가"""
    result = await service.undo_op(
        project_id,
        current_user["id"],
        op_id,
        request_id=body.request_id if body else None
    )
    return create_success_response(
        message="작업이 되돌려졌습니다",
        data=result.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.get("/projects/{project_id}/elements")
async def get_elements(
    request: Request,
    project_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    elements = await service.get_elements(project_id, current_user["id"])
    return create_success_response(
        message="요소 조회 완료",
        data={"elements": elements, "elementCount": len(elements)},
        request_id=getattr(request.state, "request_id", None)
    )


@router.post("/projects/{project_id}/reconcile")
async def reconcile(
    request: Request,
    project_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    """op 로그로부터 요소 projection 재구성"""
    result = await service.reconcile(project_id, current_user["id"])
    return create_success_response(
        message="요소 상태가 재구성되었습니다",
        data=result.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )
