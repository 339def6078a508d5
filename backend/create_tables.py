#!/usr/bin/env python3
"""
Canvas 테이블 생성 스크립트 (개발용)

운영 환경 스키마는 alembic/versions 마이그레이션으로 관리한다.
"""

import asyncio
import sys

from canvas_app.core.config import settings
from canvas_app.db.base import Base
from canvas_app.db import models  # noqa: F401  모델 등록
from canvas_app.db.session import create_engine_for_url


async def create_tables(drop_existing: bool = False):
    """모든 Canvas 테이블 생성"""

    engine = create_engine_for_url(settings.DATABASE_URL, echo=True)

    print("🚀 Canvas 테이블을 생성하는 중...")
    print(f"데이터베이스 URL: {settings.DATABASE_URL}")

    try:
        async with engine.begin() as conn:
            if drop_existing:
                # 주의: 프로덕션에서는 사용 금지
                print("기존 테이블 삭제 중...")
                await conn.run_sync(Base.metadata.drop_all)

            print("새 테이블 생성 중...")
            await conn.run_sync(Base.metadata.create_all)

        print("✅ 모든 테이블이 성공적으로 생성되었습니다!")
        for table_name in Base.metadata.tables:
            print(f"  - {table_name}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_tables(drop_existing="--drop" in sys.argv))
