"""
API 의존성 주입
"""

from typing import Any, Dict, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.core.auth import get_mock_user, verify_token
from canvas_app.core.config import settings
from canvas_app.core.exceptions import AuthenticationError
from canvas_app.db.session import get_db
from canvas_app.services.canvas_op_service import CanvasOpService
from canvas_app.services.media_gc import MediaGC
from canvas_app.services.project_service import ProjectService
from canvas_app.services.snapshot_manager import SnapshotManager
from canvas_app.utils.clock import Clock, system_clock

# HTTP Bearer 토큰 스키마
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict[str, Any]:
    """
    현재 사용자 정보 반환

    Raises:
        AuthenticationError: 토큰이 없거나 유효하지 않은 경우
    """
    if settings.MOCK_AUTH_ENABLED:
        user = get_mock_user()
        request.state.user_id = user["id"]
        return user

    if credentials is None:
        raise AuthenticationError("인증 토큰이 필요합니다")

    payload = verify_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise AuthenticationError("유효하지 않은 토큰입니다")

    request.state.user_id = str(payload["sub"])
    return {
        "id": str(payload["sub"]),
        "is_active": True,
    }


def get_clock() -> Clock:
    """현재 시각 제공자 (테스트에서 override)"""
    return system_clock


def get_op_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> CanvasOpService:
    return CanvasOpService(db, clock=clock)


def get_project_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProjectService:
    return ProjectService(db, clock=clock)


def get_media_gc(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> MediaGC:
    return MediaGC(db, clock=clock)


def get_snapshot_manager(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SnapshotManager:
    return SnapshotManager(db, clock=clock)
