"""
Op 로그 -> 현재 요소 상태(projection) 반영

apply()는 순수 함수로, 입력 dict를 변경하지 않고 새 dict를 돌려준다.
StateMaterializer는 영향받는 요소만 읽어 apply를 적용한 뒤
upsert/delete와 미디어 참조 차이를 하나의 커밋으로 기록한다.
"""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from canvas_app.models.canvas_models import OpBody, OpType, GEOMETRY_FIELDS, LAYER_FIELDS, normalize_element
from canvas_app.repositories.element import ElementRepository
from canvas_app.services.media_gc import MediaGC
from canvas_app.utils.clock import Clock, system_clock
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)

Elements = Dict[str, Dict[str, Any]]

# update 계열에서 None으로 제거할 수 없는 필드
PROTECTED_FIELDS = ("id", "type")


# ===== 요소 dict 헬퍼 =====

def _set_meta(element: Dict[str, Any], meta: Dict[str, Any]) -> None:
    if meta:
        element["meta"] = meta
    else:
        element.pop("meta", None)


def _merge_fields(element: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """얕은 병합, None 값은 필드 제거"""
    merged = copy.deepcopy(element)
    for key, value in updates.items():
        if key in PROTECTED_FIELDS:
            if value is not None and key == "type":
                merged[key] = value
            continue
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = copy.deepcopy(value)
    return normalize_element(merged)


def move_delta(data: Dict[str, Any]) -> Tuple[float, float]:
    """delta {x, y} 또는 dx/dy"""
    delta = data.get("delta")
    if isinstance(delta, dict):
        return float(delta.get("x") or 0), float(delta.get("y") or 0)
    return float(data.get("dx") or 0), float(data.get("dy") or 0)


def connector_id_of(op: OpBody) -> Optional[str]:
    return op.data.get("connectorId") or op.element_id


def group_members(group: Optional[Dict[str, Any]]) -> List[str]:
    if not group:
        return []
    members = (group.get("meta") or {}).get("memberElementIds")
    return list(members) if isinstance(members, list) else []


# ===== 타입별 적용 =====

def _apply_create(elements: Elements, op: OpBody) -> None:
    payload = [op.data["element"]] if op.data.get("element") else list(op.data.get("elements") or [])
    for element in payload:
        if element.get("id"):
            elements[element["id"]] = normalize_element(copy.deepcopy(element))


def _apply_update(elements: Elements, op: OpBody) -> None:
    element = elements.get(op.element_id)
    if element is None:
        return
    elements[op.element_id] = _merge_fields(element, op.data.get("updates") or {})


def _restricted_update(allowed) -> Callable[[Elements, OpBody], None]:
    def handler(elements: Elements, op: OpBody) -> None:
        element = elements.get(op.element_id)
        if element is None:
            return
        updates = {k: v for k, v in (op.data.get("updates") or {}).items() if k in allowed}
        elements[op.element_id] = _merge_fields(element, updates)
    return handler


def _apply_delete(elements: Elements, op: OpBody) -> None:
    for element_id in op.target_ids():
        elements.pop(element_id, None)


def _apply_move(elements: Elements, op: OpBody) -> None:
    dx, dy = move_delta(op.data)
    for element_id in op.target_ids():
        element = elements.get(element_id)
        if element is None:
            continue
        moved = copy.deepcopy(element)
        moved["x"] = (element.get("x") or 0) + dx
        moved["y"] = (element.get("y") or 0) + dy
        elements[element_id] = moved


def _apply_style(elements: Elements, op: OpBody) -> None:
    element = elements.get(op.element_id)
    if element is None:
        return
    styled = copy.deepcopy(element)
    meta = dict(styled.get("meta") or {})
    for key, value in (op.data.get("style") or {}).items():
        if value is None:
            meta.pop(key, None)
        else:
            meta[key] = copy.deepcopy(value)
    _set_meta(styled, meta)
    elements[op.element_id] = styled


def _selection(add: bool) -> Callable[[Elements, OpBody], None]:
    def handler(elements: Elements, op: OpBody) -> None:
        actor = op.data.get("selectedBy")
        if not actor:
            return
        for element_id in op.target_ids():
            element = elements.get(element_id)
            if element is None:
                continue
            updated = copy.deepcopy(element)
            meta = dict(updated.get("meta") or {})
            selected = list(meta.get("selectedBy") or [])
            if add and actor not in selected:
                selected.append(actor)
            elif not add:
                selected = [user for user in selected if user != actor]
            if selected:
                meta["selectedBy"] = selected
            else:
                meta.pop("selectedBy", None)
            _set_meta(updated, meta)
            elements[element_id] = updated
    return handler


def _apply_connect(elements: Elements, op: OpBody) -> None:
    connector_id = connector_id_of(op)
    if not connector_id:
        return
    data = op.data
    connector = copy.deepcopy(data.get("element") or {})
    connector["id"] = connector_id
    connector["type"] = "connector"
    if "x" not in connector:
        connector["x"] = data.get("fromX") or 0
    if "y" not in connector:
        connector["y"] = data.get("fromY") or 0

    meta = dict(connector.get("meta") or {})
    meta["connectorFrom"] = data.get("fromId")
    meta["connectorTo"] = data.get("toId")
    for anchor in ("fromAnchor", "toAnchor"):
        if data.get(anchor) is not None:
            meta[anchor] = data[anchor]
    connector["meta"] = meta
    elements[connector_id] = normalize_element(connector)


def _apply_disconnect(elements: Elements, op: OpBody) -> None:
    for element_id in op.target_ids():
        element = elements.get(element_id)
        if element is not None and element.get("type") == "connector":
            del elements[element_id]


def _apply_group(elements: Elements, op: OpBody) -> None:
    group = normalize_element(copy.deepcopy(op.data.get("element") or {}))
    group_id = group.get("id")
    if not group_id:
        return
    elements[group_id] = group
    for member_id in group_members(group):
        if member_id == group_id:
            continue
        member = elements.get(member_id)
        if member is None:
            continue
        stamped = copy.deepcopy(member)
        meta = dict(stamped.get("meta") or {})
        meta["groupId"] = group_id
        stamped["meta"] = meta
        elements[member_id] = stamped


def _apply_ungroup(elements: Elements, op: OpBody) -> None:
    group_id = op.element_id
    members = group_members(elements.get(group_id)) or group_members(op.data.get("elementSnapshot"))
    restore = op.data.get("restoreGroupIds") or {}
    elements.pop(group_id, None)

    for member_id in members:
        member = elements.get(member_id)
        if member is None or (member.get("meta") or {}).get("groupId") != group_id:
            continue
        released = copy.deepcopy(member)
        meta = dict(released.get("meta") or {})
        if restore.get(member_id):
            meta["groupId"] = restore[member_id]
        else:
            meta.pop("groupId", None)
        _set_meta(released, meta)
        elements[member_id] = released


OP_HANDLERS: Dict[OpType, Callable[[Elements, OpBody], None]] = {
    OpType.CREATE: _apply_create,
    OpType.UPDATE: _apply_update,
    OpType.DELETE: _apply_delete,
    OpType.MOVE: _apply_move,
    OpType.RESIZE: _restricted_update(GEOMETRY_FIELDS),
    OpType.SELECT: _selection(add=True),
    OpType.DESELECT: _selection(add=False),
    OpType.CONNECT: _apply_connect,
    OpType.DISCONNECT: _apply_disconnect,
    OpType.GROUP: _apply_group,
    OpType.UNGROUP: _apply_ungroup,
    OpType.LAYER: _restricted_update(LAYER_FIELDS),
    OpType.STYLE: _apply_style,
}


def apply(elements: Elements, op: OpBody) -> Elements:
    """(현재 요소, op) -> 새 요소 집합. 입력은 변경하지 않는다."""
    result = dict(elements)
    OP_HANDLERS[OpType(op.type)](result, op)
    return result


def replay(ops: Iterable[OpBody], initial: Optional[Elements] = None) -> Elements:
    """빈 상태(또는 initial)에서 ops를 순서대로 적용"""
    elements = dict(initial or {})
    for op in ops:
        elements = apply(elements, op)
    return elements


def affected_element_ids(op: OpBody) -> List[str]:
    """op 적용 전에 읽어야 하는 요소 id (ungroup 멤버는 그룹을 읽은 뒤 추가)"""
    op_type = OpType(op.type)
    if op_type == OpType.CREATE:
        payload = [op.data["element"]] if op.data.get("element") else list(op.data.get("elements") or [])
        return [element["id"] for element in payload if element.get("id")]
    if op_type == OpType.CONNECT:
        connector_id = connector_id_of(op)
        return [connector_id] if connector_id else []
    if op_type == OpType.GROUP:
        group = op.data.get("element") or {}
        ids = [group["id"]] if group.get("id") else []
        return ids + [member for member in group_members(group) if member not in ids]
    if op_type == OpType.UNGROUP:
        return [op.element_id] + group_members(op.data.get("elementSnapshot"))
    return op.target_ids()


def diff_elements(before: Elements, after: Elements) -> Tuple[List[Dict[str, Any]], List[str]]:
    """(upsert 대상, 삭제 대상 id)"""
    upserts = [element for element_id, element in after.items() if before.get(element_id) != element]
    deletes = [element_id for element_id in before if element_id not in after]
    return upserts, deletes


@dataclass
class MaterializeResult:
    upserted: int
    deleted: int


class StateMaterializer:
    """요소 projection 기록"""

    def __init__(self, db_session: AsyncSession, clock: Clock = system_clock, media_gc: Optional[MediaGC] = None):
        self.db = db_session
        self.clock = clock
        self.elements = ElementRepository(db_session)
        self.media_gc = media_gc or MediaGC(db_session, clock=clock)

    async def load_affected(self, project_id: str, op: OpBody) -> Elements:
        """op가 읽거나 바꾸는 요소만 조회"""
        loaded = await self.elements.get_many(project_id, affected_element_ids(op))
        if OpType(op.type) == OpType.UNGROUP:
            missing = [m for m in group_members(loaded.get(op.element_id)) if m not in loaded]
            loaded.update(await self.elements.get_many(project_id, missing))
        return loaded

    async def write_diff(self, project_id: str, before: Elements, after: Elements) -> MaterializeResult:
        """요소 변경과 미디어 참조 차이를 기록 (커밋은 호출자 담당)"""
        upserts, deletes = diff_elements(before, after)
        now = self.clock.now()
        if upserts:
            await self.elements.upsert_many(project_id, upserts, now)
        if deletes:
            await self.elements.delete_many(project_id, deletes)
        await self.media_gc.apply_reference_diff(before, after)
        return MaterializeResult(upserted=len(upserts), deleted=len(deletes))

    async def materialize(self, project_id: str, op: OpBody) -> MaterializeResult:
        """시퀀싱된 op 하나를 projection에 반영 (단일 커밋)"""
        before = await self.load_affected(project_id, op)
        after = apply(before, op)
        try:
            result = await self.write_diff(project_id, before, after)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.debug("요소 반영 완료", context={
            "project_id": project_id,
            "op_type": OpType(op.type).value,
            "upserted": result.upserted,
            "deleted": result.deleted,
        })
        return result

    async def reconcile(self, project_id: str, target: Elements) -> MaterializeResult:
        """projection 전체를 target 상태로 맞춘다"""
        current = await self.elements.list_all(project_id)
        try:
            result = await self.write_diff(project_id, current, target)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if result.upserted or result.deleted:
            logger.warning("projection 불일치 복구", context={
                "project_id": project_id,
                "upserted": result.upserted,
                "deleted": result.deleted,
            })
        return result
