"""
Canvas 스냅샷 API 엔드포인트
"""

from typing import Dict, Any, Optional
from fastapi import APIRouter, Depends, Query, Request, status

from canvas_app.api.deps import get_current_user, get_op_service
from canvas_app.core.responses import create_success_response
from canvas_app.models.canvas_models import SaveCurrentSnapshotRequest
from canvas_app.services.canvas_op_service import CanvasOpService

router = APIRouter()


@router.get("/projects/{project_id}/snapshot")
async def bootstrap(
    request: Request,
    project_id: str,
    limit: Optional[int] = Query(None, ge=1),
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    """
    초기 로드 데이터

    Returns:
        최신 스냅샷(없으면 null)과 그 이후 작업, 작업 시작 인덱스(fromOp)
    """
    payload = await service.bootstrap(project_id, current_user["id"], limit=limit)
    return create_success_response(
        message="스냅샷 조회 완료",
        data=payload.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.post("/projects/{project_id}/snapshot", status_code=status.HTTP_201_CREATED)
async def create_snapshot(
    request: Request,
    project_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    snapshot = await service.create_snapshot(project_id, current_user["id"])
    return create_success_response(
        message="스냅샷이 생성되었습니다",
        data=snapshot.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.get("/projects/{project_id}/snapshot/current")
async def get_current_snapshot(
    request: Request,
    project_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    snapshot = await service.get_current_snapshot(project_id, current_user["id"])
    return create_success_response(
        message="현재 스냅샷 조회 완료",
        data=snapshot.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.put("/projects/{project_id}/snapshot/current")
async def save_current_snapshot(
    request: Request,
    project_id: str,
    body: SaveCurrentSnapshotRequest,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: CanvasOpService = Depends(get_op_service)
) -> Dict[str, Any]:
    """클라이언트 상태를 "current" 슬롯에 저장 (op 인덱스와 무관)"""
    snapshot = await service.save_current_snapshot(project_id, current_user["id"], body.elements)
    return create_success_response(
        message="현재 스냅샷이 저장되었습니다",
        data=snapshot.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )
