"""
헬스 체크 API
"""

from datetime import datetime, timezone
from typing import Dict, Any
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.core.config import settings
from canvas_app.db.session import get_db

router = APIRouter()


@router.get("/")
async def health_check() -> Dict[str, Any]:
    """
    헬스 체크 엔드포인트

    Returns:
        서버 상태 정보
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "project": settings.PROJECT_NAME,
        "mock_auth_enabled": settings.MOCK_AUTH_ENABLED
    }


@router.get("/detailed")
async def detailed_health_check(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """
    상세 헬스 체크 엔드포인트 (저장소 연결 포함)
    """
    try:
        await db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception as e:
        database_status = f"error: {str(e)[:50]}"

    return {
        "status": "healthy" if database_status == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "configuration": {
            "mock_auth_enabled": settings.MOCK_AUTH_ENABLED,
            "workers_enabled": settings.CANVAS_WORKERS_ENABLED,
            "debug": settings.DEBUG,
            "log_level": settings.LOG_LEVEL
        },
        "services": {
            "database": database_status
        }
    }
