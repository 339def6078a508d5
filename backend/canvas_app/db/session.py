from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from canvas_app.core.config import settings


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """URL에 맞는 비동기 엔진 생성 (SQLite는 풀 옵션을 받지 않음)"""
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": 30},
        )

    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
    )


engine = create_engine_for_url(settings.DATABASE_URL, echo=settings.DEBUG and settings.ENVIRONMENT == "development")

# 비동기 세션
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
