from typing import Generic, TypeVar, Type, Optional, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from canvas_app.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """기본 Repository 클래스

    commit=False로 호출하면 flush만 수행하고 트랜잭션 경계는 호출자(서비스)가 정한다.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, commit: bool = True, **kwargs) -> ModelType:
        """새 레코드 생성"""
        instance = self.model(**kwargs)
        self.session.add(instance)
        if commit:
            await self.session.commit()
            await self.session.refresh(instance)
        else:
            await self.session.flush()
        return instance

    async def get(self, id: Any) -> Optional[ModelType]:
        """ID로 레코드 조회"""
        result = await self.session.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

