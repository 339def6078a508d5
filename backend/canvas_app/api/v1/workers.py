"""
워커 수동 실행 엔드포인트 (운영/테스트용)

주기 실행과 같은 로직을 단일 대상에 대해 즉시 실행한다.
"""

from typing import Dict, Any
from fastapi import APIRouter, Depends, Query, Request

from canvas_app.api.deps import get_current_user, get_media_gc, get_snapshot_manager
from canvas_app.core.config import settings
from canvas_app.core.exceptions import AuthorizationError
from canvas_app.core.responses import create_success_response
from canvas_app.db.models.project import ProjectRole
from canvas_app.services.access_guard import AccessGuard
from canvas_app.services.logging_service import log_api_call
from canvas_app.services.media_gc import MediaGC, MediaGCConfig
from canvas_app.services.snapshot_manager import SnapshotManager

router = APIRouter()


@router.post("/workers/snapshot")
@log_api_call("snapshot_worker_trigger")
async def trigger_snapshot(
    request: Request,
    project_id: str = Query(..., alias="projectId"),
    current_user: Dict[str, Any] = Depends(get_current_user),
    manager: SnapshotManager = Depends(get_snapshot_manager)
) -> Dict[str, Any]:
    """임계값(작업 수/경과 시간)을 넘은 경우에만 스냅샷 생성"""
    await AccessGuard(manager.db).can_access(project_id, current_user["id"], ProjectRole.EDITOR)

    result = await manager.create_snapshot_for_project(project_id)
    return create_success_response(
        message="스냅샷 워커 실행 완료",
        data=result.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.post("/workers/media-gc")
@log_api_call("media_gc_trigger")
async def trigger_media_gc(
    request: Request,
    media_id: str = Query(..., alias="mediaId"),
    dry_run: bool = Query(True, alias="dryRun"),
    current_user: Dict[str, Any] = Depends(get_current_user),
    media_gc: MediaGC = Depends(get_media_gc)
) -> Dict[str, Any]:
    """단일 미디어 GC (기본은 dry run)

    프로젝트 소속 미디어는 편집 권한, 소속 없는 미디어는 워커 관리자만 실행할 수 있다.
    """
    media = await media_gc.get_media(media_id)
    if media.project_id:
        await AccessGuard(media_gc.db).can_access(media.project_id, current_user["id"], ProjectRole.EDITOR)
    elif current_user["id"] not in settings.WORKER_ADMIN_USER_IDS:
        raise AuthorizationError("프로젝트에 속하지 않은 미디어는 관리자만 정리할 수 있습니다")

    result = await media_gc.gc_media_item(media_id, MediaGCConfig.from_settings(dry_run=dry_run))
    return create_success_response(
        message="미디어 GC 실행 완료",
        data=result.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )
