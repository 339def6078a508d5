"""
되돌리기(undo)용 역연산 계산

순수 함수만 포함하며 저장소에 접근하지 않는다.
op 자체만으로 되돌릴 수 없는 타입은 시퀀싱 전에 capture_prior_state()로
적용 전 상태(previousState / elementSnapshot(s) / previousSelection)를 data에 기록해 둔다.
"""

import copy
from typing import Any, Callable, Dict, List, Optional

from canvas_app.models.canvas_models import OpBody, OpDraft, OpType, GEOMETRY_FIELDS, LAYER_FIELDS
from canvas_app.services.state_materializer import move_delta, connector_id_of, group_members

Elements = Dict[str, Dict[str, Any]]


# ===== 적용 전 상태 기록 =====

def _previous_values(element: Dict[str, Any], keys) -> Dict[str, Any]:
    """키별 이전 값 (없던 키는 None = 되돌릴 때 제거)"""
    return {key: copy.deepcopy(element.get(key)) for key in keys}


def capture_prior_state(elements: Elements, draft: OpDraft) -> OpDraft:
    """draft.data에 적용 전 상태를 채운 새 draft 반환

    서버 projection에 요소가 있으면 그 값이 우선하고,
    없으면 클라이언트가 보낸 값을 그대로 둔다.
    """
    op_type = OpType(draft.type)
    data = copy.deepcopy(draft.data)

    if op_type == OpType.CREATE:
        previous = [copy.deepcopy(elements[element_id]) for element_id in _create_ids(data) if element_id in elements]
        if previous:
            data["previousElements"] = previous
        else:
            data.pop("previousElements", None)

    elif op_type in (OpType.UPDATE, OpType.RESIZE, OpType.LAYER):
        element = elements.get(draft.element_id)
        if element is not None:
            keys = list((data.get("updates") or {}).keys())
            if op_type == OpType.RESIZE:
                keys = [key for key in keys if key in GEOMETRY_FIELDS]
            elif op_type == OpType.LAYER:
                keys = [key for key in keys if key in LAYER_FIELDS]
            data["previousState"] = _previous_values(element, keys)

    elif op_type == OpType.STYLE:
        element = elements.get(draft.element_id)
        if element is not None:
            data["previousState"] = _previous_values(element.get("meta") or {}, (data.get("style") or {}).keys())

    elif op_type in (OpType.DELETE, OpType.DISCONNECT):
        snapshots = [
            copy.deepcopy(elements[element_id])
            for element_id in draft.target_ids()
            if element_id in elements
            and (op_type == OpType.DELETE or elements[element_id].get("type") == "connector")
        ]
        if len(snapshots) == 1:
            data["elementSnapshot"] = snapshots[0]
            data.pop("elementSnapshots", None)
        elif snapshots:
            data["elementSnapshots"] = snapshots
            data.pop("elementSnapshot", None)

    elif op_type in (OpType.SELECT, OpType.DESELECT):
        actor = data.get("selectedBy")
        if actor:
            data["previousSelection"] = {
                element_id: actor in ((elements[element_id].get("meta") or {}).get("selectedBy") or [])
                for element_id in draft.target_ids()
                if element_id in elements
            }

    elif op_type == OpType.GROUP:
        group_id = (data.get("element") or {}).get("id")
        data["previousGroupIds"] = {
            member_id: (elements[member_id].get("meta") or {}).get("groupId")
            for member_id in group_members(data.get("element"))
            if member_id in elements and member_id != group_id
        }

    elif op_type == OpType.UNGROUP:
        group = elements.get(draft.element_id)
        if group is not None:
            data["elementSnapshot"] = copy.deepcopy(group)

    return draft.model_copy(update={"data": data})


# ===== 역연산 =====

def _draft(op_type: OpType, data: Dict[str, Any], element_id: Optional[str] = None,
           element_ids: Optional[List[str]] = None) -> OpDraft:
    return OpDraft(type=op_type, element_id=element_id, element_ids=element_ids, data=data)


def _snapshots(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    if data.get("elementSnapshots"):
        return list(data["elementSnapshots"])
    if data.get("elementSnapshot"):
        return [data["elementSnapshot"]]
    return []


def _create_ids(data: Dict[str, Any]) -> List[str]:
    payload = [data["element"]] if data.get("element") else list(data.get("elements") or [])
    return [element["id"] for element in payload if element.get("id")]


def _invert_create(op: OpBody) -> Optional[OpDraft]:
    ids = _create_ids(op.data)
    if not ids:
        return None
    previous = {element["id"]: element for element in op.data.get("previousElements") or []}
    if previous:
        # 기존 요소를 덮어쓴 create는 이전 요소 복원, 신규 id와 섞이면 되돌릴 수 없음
        if set(ids) - set(previous):
            return None
        return _recreate([previous[element_id] for element_id in ids])
    if len(ids) == 1:
        return _draft(OpType.DELETE, {}, element_id=ids[0])
    return _draft(OpType.DELETE, {}, element_ids=ids)


def _recreate(snapshots: List[Dict[str, Any]]) -> Optional[OpDraft]:
    if not snapshots:
        return None
    if len(snapshots) == 1:
        return _draft(OpType.CREATE, {"element": copy.deepcopy(snapshots[0])}, element_id=snapshots[0]["id"])
    return _draft(
        OpType.CREATE,
        {"elements": copy.deepcopy(snapshots)},
        element_ids=[snapshot["id"] for snapshot in snapshots],
    )


def _invert_delete(op: OpBody) -> Optional[OpDraft]:
    return _recreate(_snapshots(op.data))


def _invert_move(op: OpBody) -> Optional[OpDraft]:
    dx, dy = move_delta(op.data)
    return _draft(
        OpType.MOVE,
        {"delta": {"x": -dx, "y": -dy}},
        element_id=op.element_id,
        element_ids=list(op.element_ids) if op.element_ids else None,
    )


def _invert_update(op: OpBody) -> Optional[OpDraft]:
    previous = op.data.get("previousState")
    if not previous:
        return None
    return _draft(OpType(op.type), {"updates": copy.deepcopy(previous)}, element_id=op.element_id)


def _invert_style(op: OpBody) -> Optional[OpDraft]:
    previous = op.data.get("previousState")
    if not previous:
        return None
    return _draft(OpType.STYLE, {"style": copy.deepcopy(previous)}, element_id=op.element_id)


def _invert_selection(op: OpBody) -> Optional[OpDraft]:
    previous = op.data.get("previousSelection")
    if previous is None:
        return None
    was_selecting = OpType(op.type) == OpType.SELECT
    # 선택 상태가 실제로 바뀐 요소만 되돌린다
    changed = [element_id for element_id, selected in previous.items() if selected != was_selecting]
    if not changed:
        return None
    return _draft(
        OpType.DESELECT if was_selecting else OpType.SELECT,
        {"selectedBy": op.data.get("selectedBy")},
        element_ids=changed,
    )


def _invert_connect(op: OpBody) -> Optional[OpDraft]:
    connector_id = connector_id_of(op)
    if not connector_id:
        return None
    return _draft(OpType.DISCONNECT, {}, element_id=connector_id)


def _invert_disconnect(op: OpBody) -> Optional[OpDraft]:
    snapshots = _snapshots(op.data)
    if len(snapshots) != 1:
        return _recreate(snapshots)

    connector = snapshots[0]
    meta = connector.get("meta") or {}
    if not meta.get("connectorFrom") or not meta.get("connectorTo"):
        return _recreate(snapshots)

    data = {
        "connectorId": connector["id"],
        "fromId": meta["connectorFrom"],
        "toId": meta["connectorTo"],
        "element": copy.deepcopy(connector),
    }
    for anchor in ("fromAnchor", "toAnchor"):
        if meta.get(anchor) is not None:
            data[anchor] = meta[anchor]
    return _draft(OpType.CONNECT, data, element_id=connector["id"])


def _invert_group(op: OpBody) -> Optional[OpDraft]:
    group_id = (op.data.get("element") or {}).get("id")
    if not group_id:
        return None
    data: Dict[str, Any] = {}
    restore = {
        member_id: group
        for member_id, group in (op.data.get("previousGroupIds") or {}).items()
        if group
    }
    if restore:
        data["restoreGroupIds"] = restore
    return _draft(OpType.UNGROUP, data, element_id=group_id)


def _invert_ungroup(op: OpBody) -> Optional[OpDraft]:
    snapshot = op.data.get("elementSnapshot")
    if not snapshot or not isinstance((snapshot.get("meta") or {}).get("memberElementIds"), list):
        return None
    return _draft(OpType.GROUP, {"element": copy.deepcopy(snapshot)}, element_id=snapshot["id"])


INVERTERS: Dict[OpType, Callable[[OpBody], Optional[OpDraft]]] = {
    OpType.CREATE: _invert_create,
    OpType.UPDATE: _invert_update,
    OpType.DELETE: _invert_delete,
    OpType.MOVE: _invert_move,
    OpType.RESIZE: _invert_update,
    OpType.SELECT: _invert_selection,
    OpType.DESELECT: _invert_selection,
    OpType.CONNECT: _invert_connect,
    OpType.DISCONNECT: _invert_disconnect,
    OpType.GROUP: _invert_group,
    OpType.UNGROUP: _invert_ungroup,
    OpType.LAYER: _invert_update,
    OpType.STYLE: _invert_style,
}


def invert(op: OpBody, prior_elements: Optional[Elements] = None) -> Optional[OpDraft]:
    """op의 역연산 draft (필요한 적용 전 상태가 없으면 None)"""
    if prior_elements is not None:
        draft = op if isinstance(op, OpDraft) else OpDraft(
            type=op.type, element_id=op.element_id, element_ids=op.element_ids, data=op.data,
        )
        op = capture_prior_state(prior_elements, draft)
    return INVERTERS[OpType(op.type)](op)
