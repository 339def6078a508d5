"""
API v1 메인 라우터
"""

from fastapi import APIRouter

from canvas_app.api.v1 import health, projects, ops, snapshots, media, workers

api_router = APIRouter()

# 각 기능별 라우터 포함
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(projects.router, prefix="/canvas", tags=["canvas-projects"])
api_router.include_router(ops.router, prefix="/canvas", tags=["canvas-ops"])
api_router.include_router(snapshots.router, prefix="/canvas", tags=["canvas-snapshots"])
api_router.include_router(media.router, prefix="/canvas", tags=["canvas-media"])
api_router.include_router(workers.router, prefix="/canvas", tags=["canvas-workers"])
