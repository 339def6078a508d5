"""
Canvas 미디어 API 엔드포인트
"""

from typing import Dict, Any
from fastapi import APIRouter, Depends, Request, status

from canvas_app.api.deps import get_current_user, get_media_gc
from canvas_app.core.responses import create_success_response
from canvas_app.db.models.project import ProjectRole
from canvas_app.models.canvas_models import MediaCreate
from canvas_app.services.access_guard import AccessGuard
from canvas_app.services.media_gc import MediaGC, media_to_data

router = APIRouter()


@router.post("/media", status_code=status.HTTP_201_CREATED)
async def register_media(
    request: Request,
    body: MediaCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    media_gc: MediaGC = Depends(get_media_gc)
) -> Dict[str, Any]:
    """미디어 등록 - 참조 수 0, 요소가 meta.mediaId로 참조하면 증가"""
    if body.project_id:
        await AccessGuard(media_gc.db).can_access(body.project_id, current_user["id"], ProjectRole.EDITOR)

    media = await media_gc.register_media(body)
    return create_success_response(
        message="미디어가 등록되었습니다",
        data=media_to_data(media).model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.get("/media/{media_id}")
async def get_media(
    request: Request,
    media_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    media_gc: MediaGC = Depends(get_media_gc)
) -> Dict[str, Any]:
    media = await media_gc.get_media(media_id)
    return create_success_response(
        message="미디어 조회 완료",
        data=media_to_data(media).model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )
