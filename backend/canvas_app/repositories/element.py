import copy
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.repositories.base import BaseRepository
from canvas_app.db.models.element import CanvasElement
from canvas_app.models.canvas_models import normalize_element

# 와이어 필드 -> 컬럼 매핑 (id, type 제외)
ELEMENT_COLUMNS: Dict[str, str] = {
    "x": "x",
    "y": "y",
    "width": "width",
    "height": "height",
    "rotation": "rotation",
    "scaleX": "scale_x",
    "scaleY": "scale_y",
    "opacity": "opacity",
    "visible": "visible",
    "locked": "locked",
    "zIndex": "z_index",
    "meta": "meta",
}


def row_to_element(row: CanvasElement) -> Dict[str, Any]:
    """DB 레코드 -> 요소 dict (None 컬럼은 생략, JSON 값은 복사본)"""
    element: Dict[str, Any] = {"id": row.id, "type": row.element_type}
    for field, column in ELEMENT_COLUMNS.items():
        value = getattr(row, column)
        if value is not None:
            element[field] = copy.deepcopy(value) if field == "meta" else value
    if row.attrs:
        for key, value in row.attrs.items():
            element.setdefault(key, copy.deepcopy(value))
    return normalize_element(element)


def element_to_columns(element: Dict[str, Any]) -> Dict[str, Any]:
    """요소 dict -> 컬럼 값 (매핑되지 않은 키는 attrs로)"""
    values: Dict[str, Any] = {column: element.get(field) for field, column in ELEMENT_COLUMNS.items()}
    values["element_type"] = element.get("type")
    extra = {
        key: value
        for key, value in element.items()
        if key not in ELEMENT_COLUMNS and key not in ("id", "type")
    }
    values["attrs"] = extra or None
    return values


class ElementRepository(BaseRepository[CanvasElement]):
    """Canvas 요소 Repository (last-writer-wins, 커밋은 호출자 담당)"""

    def __init__(self, session: AsyncSession):
        super().__init__(CanvasElement, session)

    async def get_many(self, project_id: str, element_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """지정한 요소들만 조회"""
        ids = list(dict.fromkeys(element_ids))
        if not ids:
            return {}
        result = await self.session.execute(
            select(CanvasElement).where(
                CanvasElement.project_id == project_id,
                CanvasElement.id.in_(ids),
            )
        )
        return {row.id: row_to_element(row) for row in result.scalars().all()}

    async def list_all(self, project_id: str) -> Dict[str, Dict[str, Any]]:
        """프로젝트의 현재 요소 전체"""
        result = await self.session.execute(
            select(CanvasElement)
            .where(CanvasElement.project_id == project_id)
            .order_by(CanvasElement.z_index.asc(), CanvasElement.created_at.asc())
        )
        return {row.id: row_to_element(row) for row in result.scalars().all()}

    async def upsert_many(self, project_id: str, elements: List[Dict[str, Any]], now: datetime) -> int:
        """요소 upsert (flush만 수행)"""
        for element in elements:
            values = element_to_columns(element)
            row: Optional[CanvasElement] = await self.session.get(CanvasElement, (project_id, element["id"]))
            if row is None:
                row = CanvasElement(project_id=project_id, id=element["id"], created_at=now, updated_at=now, **values)
                self.session.add(row)
            else:
                for column, value in values.items():
                    setattr(row, column, value)
                row.updated_at = now
        await self.session.flush()
        return len(elements)

    async def delete_many(self, project_id: str, element_ids: Iterable[str]) -> int:
        """요소 삭제 (flush만 수행)"""
        ids = list(dict.fromkeys(element_ids))
        if not ids:
            return 0
        result = await self.session.execute(
            delete(CanvasElement)
            .where(CanvasElement.project_id == project_id, CanvasElement.id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
