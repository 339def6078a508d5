"""
테스트 설정 및 픽스처

테스트마다 임시 디렉토리의 SQLite 파일 DB를 새로 만든다.
"""

import os

# canvas_app 설정이 로드되기 전에 지정해야 한다
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_canvas.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["MOCK_AUTH_ENABLED"] = "false"
os.environ["CANVAS_WORKERS_ENABLED"] = "false"
os.environ["DATABASE_AUTO_CREATE"] = "false"

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from canvas_app.db.base import Base
from canvas_app.db import models  # noqa: F401
from canvas_app.db.session import create_engine_for_url
from canvas_app.models.canvas_models import CollaboratorAdd, OpDraft, ProjectCreate
from canvas_app.services.blob_storage import BlobStorage
from canvas_app.services.project_service import ProjectService
from canvas_app.utils.clock import ManualClock

OWNER_ID = "owner-1"
EDITOR_ID = "editor-1"
VIEWER_ID = "viewer-1"
STRANGER_ID = "stranger-1"


@pytest.fixture
async def engine(tmp_path):
    """테스트용 비동기 엔진 (파일 DB라 세션 여러 개가 동시에 접근 가능)"""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'canvas.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """테스트용 데이터베이스 세션"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return ManualClock(datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
async def project(db_session, clock):
    """owner + editor + viewer가 있는 프로젝트"""
    service = ProjectService(db_session, clock=clock)
    created = await service.create_project(OWNER_ID, ProjectCreate(name="테스트 캔버스"))
    await service.add_collaborator(created.id, OWNER_ID, CollaboratorAdd(user_id=EDITOR_ID, role="editor"))
    await service.add_collaborator(created.id, OWNER_ID, CollaboratorAdd(user_id=VIEWER_ID, role="viewer"))
    return await service.get_project(created.id, OWNER_ID)


class RecordingBlobStorage(BlobStorage):
    """삭제 호출을 기록하는 테스트용 blob 저장소"""

    def __init__(self, fail: bool = False):
        self.deleted: List[str] = []
        self.fail = fail

    async def delete(self, storage_path: str) -> bool:
        if self.fail:
            raise OSError("blob 저장소 연결 실패")
        self.deleted.append(storage_path)
        return True


@pytest.fixture
def blob_storage():
    return RecordingBlobStorage()


# 테스트 헬퍼 함수들
class TestHelpers:
    @staticmethod
    def element(element_id: str, element_type: str = "shape", **fields) -> Dict[str, Any]:
        element = {"id": element_id, "type": element_type, "x": 0.0, "y": 0.0}
        element.update(fields)
        return element

    @staticmethod
    def draft(op_type: str, data: Dict[str, Any] = None, **kwargs) -> OpDraft:
        return OpDraft(type=op_type, data=data or {}, **kwargs)


@pytest.fixture
def helpers():
    """테스트 헬퍼 클래스"""
    return TestHelpers


@pytest.fixture
async def api_client(session_factory, clock):
    """ASGI 앱에 직접 붙는 HTTP 클라이언트

    X-Test-User 헤더로 요청자를 바꾼다. 헤더가 없으면 인증 실패.
    """
    from fastapi import Request

    from canvas_app.api.deps import get_clock, get_current_user
    from canvas_app.core.exceptions import AuthenticationError
    from canvas_app.db.session import get_db
    from canvas_app.main import create_app

    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_current_user(request: Request) -> Dict[str, Any]:
        user_id = request.headers.get("X-Test-User")
        if not user_id:
            raise AuthenticationError("인증 토큰이 필요합니다")
        request.state.user_id = user_id
        return {"id": user_id, "is_active": True}

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


def as_user(user_id: str) -> Dict[str, str]:
    return {"X-Test-User": user_id}
