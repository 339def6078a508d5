"""
Canvas 협업 백엔드 메인 FastAPI 애플리케이션
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import time

from canvas_app.core.config import settings
from canvas_app.core.exceptions import CanvasAppException
from canvas_app.core.exception_handlers import (
    canvas_exception_handler,
    validation_exception_handler,
    database_exception_handler,
    general_exception_handler,
    starlette_http_exception_handler
)
from canvas_app.core.responses import create_success_response
from canvas_app.db.base import Base
from canvas_app.db import models  # noqa: F401  모델 등록
from canvas_app.db.session import AsyncSessionLocal, engine
from canvas_app.middleware.logging_middleware import LoggingMiddleware
from canvas_app.services.canvas_workers import CanvasWorkers
from canvas_app.services.logging_service import logging_service
from canvas_app.utils.logger import setup_logging

logger = setup_logging()

# 서버 시작 시간 기록
server_start_time = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 생명주기 관리"""
    logger.info("🚀 Canvas 협업 백엔드 서버가 시작됩니다...")
    logger.info(f"환경: {settings.ENVIRONMENT}")
    logger.info(f"Mock 인증: {settings.MOCK_AUTH_ENABLED}")

    if settings.DATABASE_AUTO_CREATE:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    workers = None
    if settings.CANVAS_WORKERS_ENABLED:
        workers = CanvasWorkers(AsyncSessionLocal)
        workers.start()

    logging_service.log_security_event(
        event_type="server_startup",
        description="Canvas 협업 서버 시작",
        severity="INFO",
        version=settings.VERSION,
        environment=settings.ENVIRONMENT
    )

    yield

    logger.info("🛑 Canvas 협업 백엔드 서버가 종료됩니다...")
    if workers is not None:
        await workers.stop()
    await engine.dispose()

    logging_service.log_security_event(
        event_type="server_shutdown",
        description="Canvas 협업 서버 종료",
        severity="INFO",
        uptime=time.time() - server_start_time
    )


def create_app() -> FastAPI:
    """애플리케이션 생성 (테스트에서도 사용)"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="실시간 협업 캔버스 op 로그 엔진",
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs" if settings.DEBUG else None,
        redoc_url=f"{settings.API_V1_STR}/redoc" if settings.DEBUG else None,
        lifespan=lifespan
    )

    # 미들웨어 추가 (나중에 추가한 것이 바깥쪽)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 예외 처리기 등록
    app.add_exception_handler(CanvasAppException, canvas_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return create_success_response(
            message="Canvas 협업 백엔드 API",
            data={
                "service": settings.PROJECT_NAME,
                "version": settings.VERSION,
                "environment": settings.ENVIRONMENT,
                "uptime": time.time() - server_start_time
            }
        )

    from canvas_app.api.v1.api import api_router
    app.include_router(api_router, prefix=settings.API_V1_STR)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "canvas_app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
