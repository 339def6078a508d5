# Canvas 협업 엔진 데이터 모델
# Op 로그, 요소, 스냅샷, 미디어의 API/서비스 계층 스키마

import copy
from datetime import datetime
from typing import Optional, Dict, List, Any, Set, Type
from enum import Enum
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

# ===== Enum 정의 =====

class OpType(str, Enum):
    """Canvas 작업 유형"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MOVE = "move"
    RESIZE = "resize"
    SELECT = "select"
    DESELECT = "deselect"
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    GROUP = "group"
    UNGROUP = "ungroup"
    LAYER = "layer"
    STYLE = "style"


class ElementType(str, Enum):
    """Canvas 요소 타입"""
    IMAGE = "image"
    VIDEO = "video"
    TEXT = "text"
    SHAPE = "shape"
    GROUP = "group"
    CONNECTOR = "connector"
    MODEL_3D = "3d"


# resize/layer가 변경할 수 있는 필드
GEOMETRY_FIELDS: Set[str] = {"x", "y", "width", "height", "rotation", "scaleX", "scaleY"}
LAYER_FIELDS: Set[str] = {"zIndex"}
# 저장/재생 시 float로 맞추는 수치 필드
FLOAT_FIELDS: Set[str] = GEOMETRY_FIELDS | {"opacity"}


# ===== 요소 =====

class ElementFields(BaseModel):
    """컬럼에 매핑되는 요소 필드의 타입 (문자열 숫자 등 암묵적 변환 없음)"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    width: Optional[StrictFloat] = None
    height: Optional[StrictFloat] = None
    rotation: Optional[StrictFloat] = None
    scale_x: Optional[StrictFloat] = Field(default=None, alias="scaleX")
    scale_y: Optional[StrictFloat] = Field(default=None, alias="scaleY")
    opacity: Optional[StrictFloat] = None
    visible: Optional[StrictBool] = None
    locked: Optional[StrictBool] = None
    z_index: Optional[StrictInt] = Field(default=None, alias="zIndex")
    meta: Optional[Dict[str, Any]] = None


class ElementData(ElementFields):
    """Canvas 요소 (와이어 포맷은 camelCase)"""

    id: str = Field(min_length=1)
    type: ElementType
    x: StrictFloat = 0.0
    y: StrictFloat = 0.0


class ElementPatch(ElementFields):
    """update 계열의 부분 변경 - None은 필드 제거"""

    type: Optional[ElementType] = None
    x: Optional[StrictFloat] = None
    y: Optional[StrictFloat] = None


def normalize_element(element: Dict[str, Any]) -> Dict[str, Any]:
    """요소 dict의 저장 형태: 값이 None인 키는 없고 수치 필드는 float

    op 재생 결과와 DB projection이 같은 형태가 되도록 양쪽 모두 이 함수를 거친다.
    """
    normalized: Dict[str, Any] = {}
    for key, value in element.items():
        if value is None:
            continue
        if key in FLOAT_FIELDS and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        normalized[key] = value
    return normalized


# ===== Op 페이로드 (타입별 닫힌 집합) =====

class OpPayload(BaseModel):
    """Op data 공통 베이스 - 알려지지 않은 필드는 보존"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class CreatePayload(OpPayload):
    element: Optional[ElementData] = None
    elements: Optional[List[ElementData]] = None
    previous_elements: Optional[List[Dict[str, Any]]] = Field(default=None, alias="previousElements")

    @model_validator(mode="after")
    def _require_element(self):
        if self.element is None and not self.elements:
            raise ValueError("create 작업에는 element 또는 elements가 필요합니다")
        return self


class UpdatePayload(OpPayload):
    updates: Dict[str, Any]
    previous_state: Optional[Dict[str, Any]] = Field(default=None, alias="previousState")

    @field_validator("updates")
    @classmethod
    def _typed_fields(cls, updates: Dict[str, Any]) -> Dict[str, Any]:
        # 원본 dict를 그대로 저장하므로 검증만 한다 (None은 제거 의미로 보존)
        try:
            ElementPatch.model_validate(updates)
        except PydanticValidationError as e:
            fields = sorted({str(error["loc"][0]) for error in e.errors() if error["loc"]})
            raise ValueError(f"updates 필드 타입이 올바르지 않습니다: {fields}") from e
        return updates

    @model_validator(mode="after")
    def _require_updates(self):
        if not self.updates:
            raise ValueError("updates가 비어 있습니다")
        if "id" in self.updates:
            raise ValueError("요소 id는 변경할 수 없습니다")
        return self


class DeletePayload(OpPayload):
    element_snapshot: Optional[Dict[str, Any]] = Field(default=None, alias="elementSnapshot")
    element_snapshots: Optional[List[Dict[str, Any]]] = Field(default=None, alias="elementSnapshots")


class MoveDelta(BaseModel):
    x: float = 0.0
    y: float = 0.0


class MovePayload(OpPayload):
    delta: Optional[MoveDelta] = None
    dx: Optional[float] = None
    dy: Optional[float] = None

    @model_validator(mode="after")
    def _require_delta(self):
        if self.delta is None and self.dx is None and self.dy is None:
            raise ValueError("move 작업에는 delta {x, y}가 필요합니다")
        return self


class ResizePayload(UpdatePayload):

    @model_validator(mode="after")
    def _geometry_only(self):
        invalid = set(self.updates) - GEOMETRY_FIELDS
        if invalid:
            raise ValueError(f"resize로 변경할 수 없는 필드: {sorted(invalid)}")
        return self


class LayerPayload(UpdatePayload):

    @model_validator(mode="after")
    def _z_index_only(self):
        invalid = set(self.updates) - LAYER_FIELDS
        if invalid:
            raise ValueError(f"layer로 변경할 수 없는 필드: {sorted(invalid)}")
        return self


class StylePayload(OpPayload):
    style: Dict[str, Any]
    previous_state: Optional[Dict[str, Any]] = Field(default=None, alias="previousState")

    @model_validator(mode="after")
    def _require_style(self):
        if not self.style:
            raise ValueError("style이 비어 있습니다")
        return self


class SelectionPayload(OpPayload):
    selected_by: Optional[str] = Field(default=None, alias="selectedBy")
    previous_selection: Optional[Dict[str, bool]] = Field(default=None, alias="previousSelection")


class ConnectPayload(OpPayload):
    from_id: str = Field(alias="fromId", min_length=1)
    to_id: str = Field(alias="toId", min_length=1)
    connector_id: Optional[str] = Field(default=None, alias="connectorId")
    from_anchor: Optional[str] = Field(default=None, alias="fromAnchor")
    to_anchor: Optional[str] = Field(default=None, alias="toAnchor")
    from_x: Optional[StrictFloat] = Field(default=None, alias="fromX")
    from_y: Optional[StrictFloat] = Field(default=None, alias="fromY")
    # 전체 커넥터 요소 (disconnect 되돌리기 시 원본 복원용)
    element: Optional[ElementPatch] = None


class DisconnectPayload(OpPayload):
    element_snapshot: Optional[Dict[str, Any]] = Field(default=None, alias="elementSnapshot")
    element_snapshots: Optional[List[Dict[str, Any]]] = Field(default=None, alias="elementSnapshots")


class GroupPayload(OpPayload):
    element: ElementData
    previous_group_ids: Optional[Dict[str, Optional[str]]] = Field(default=None, alias="previousGroupIds")

    @model_validator(mode="after")
    def _require_members(self):
        members = (self.element.meta or {}).get("memberElementIds")
        if not isinstance(members, list):
            raise ValueError("group 요소에는 meta.memberElementIds 목록이 필요합니다")
        return self


class UngroupPayload(OpPayload):
    element_snapshot: Optional[Dict[str, Any]] = Field(default=None, alias="elementSnapshot")
    restore_group_ids: Optional[Dict[str, Optional[str]]] = Field(default=None, alias="restoreGroupIds")


OP_PAYLOAD_MODELS: Dict[OpType, Type[OpPayload]] = {
    OpType.CREATE: CreatePayload,
    OpType.UPDATE: UpdatePayload,
    OpType.DELETE: DeletePayload,
    OpType.MOVE: MovePayload,
    OpType.RESIZE: ResizePayload,
    OpType.SELECT: SelectionPayload,
    OpType.DESELECT: SelectionPayload,
    OpType.CONNECT: ConnectPayload,
    OpType.DISCONNECT: DisconnectPayload,
    OpType.GROUP: GroupPayload,
    OpType.UNGROUP: UngroupPayload,
    OpType.LAYER: LayerPayload,
    OpType.STYLE: StylePayload,
}

# 단일 elementId가 필요한 타입 / elementId 또는 elementIds가 필요한 타입
SINGLE_TARGET_TYPES: Set[OpType] = {OpType.UPDATE, OpType.RESIZE, OpType.LAYER, OpType.STYLE, OpType.UNGROUP}
MULTI_TARGET_TYPES: Set[OpType] = {OpType.DELETE, OpType.MOVE, OpType.SELECT, OpType.DESELECT, OpType.DISCONNECT}


def parse_payload(op_type: OpType, data: Dict[str, Any]) -> OpPayload:
    """타입에 맞는 페이로드 모델로 검증 (실패 시 pydantic ValidationError)"""
    return OP_PAYLOAD_MODELS[OpType(op_type)].model_validate(data or {})


# ===== Op =====

class OpBody(BaseModel):
    """Op 공통 필드 - 시퀀싱 전(draft)과 후(record)가 공유"""
    model_config = ConfigDict(populate_by_name=True)

    type: OpType
    element_id: Optional[str] = Field(default=None, alias="elementId")
    element_ids: Optional[List[str]] = Field(default=None, alias="elementIds")
    data: Dict[str, Any] = Field(default_factory=dict)

    def target_ids(self) -> List[str]:
        """작업 대상 요소 id 목록 (elementIds 우선, 중복 제거)"""
        ids: List[str] = []
        if self.element_ids:
            ids.extend(self.element_ids)
        if self.element_id and self.element_id not in ids:
            ids.insert(0, self.element_id)
        return ids

    def to_wire(self) -> Dict[str, Any]:
        """요청 바디 형식의 dict (data 내부의 None 값은 보존)"""
        body: Dict[str, Any] = {"type": self.type.value, "data": copy.deepcopy(self.data)}
        if self.element_id is not None:
            body["elementId"] = self.element_id
        if self.element_ids is not None:
            body["elementIds"] = list(self.element_ids)
        return body


class OpDraft(OpBody):
    """클라이언트가 제출하는 미시퀀싱 작업"""
    request_id: Optional[str] = Field(default=None, alias="requestId", max_length=255)
    client_ts: Optional[int] = Field(default=None, alias="clientTs")

    @model_validator(mode="after")
    def _validate_payload(self):
        parse_payload(self.type, self.data)

        if self.type in SINGLE_TARGET_TYPES and not self.element_id:
            raise ValueError(f"{self.type.value} 작업에는 elementId가 필요합니다")
        if self.type in MULTI_TARGET_TYPES and not self.target_ids():
            raise ValueError(f"{self.type.value} 작업에는 elementId 또는 elementIds가 필요합니다")
        return self


class CanvasOpData(OpBody):
    """시퀀싱된 작업 레코드"""
    id: str
    project_id: str = Field(alias="projectId")
    op_index: int = Field(alias="opIndex")
    inverse: Optional[Dict[str, Any]] = None
    actor_id: str = Field(alias="actorId")
    request_id: Optional[str] = Field(default=None, alias="requestId")
    client_ts: Optional[int] = Field(default=None, alias="clientTs")
    created_at: datetime = Field(alias="createdAt")


class OpAppendResult(BaseModel):
    """append 결과"""
    model_config = ConfigDict(populate_by_name=True)

    op_id: str = Field(alias="opId")
    op_index: int = Field(alias="opIndex")
    duplicate: bool = False


class UndoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: Optional[str] = Field(default=None, alias="requestId", max_length=255)


class ReconcileResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId")
    op_index: int = Field(alias="opIndex")
    element_count: int = Field(alias="elementCount")
    upserted: int = 0
    deleted: int = 0


# ===== 스냅샷 =====

class SnapshotData(BaseModel):
    """op_index 시점의 요소 전체 상태"""
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId")
    op_index: int = Field(alias="opIndex")
    elements: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    format_version: str = Field(default="1.0", alias="formatVersion")
    element_count: int = Field(default=0, alias="elementCount")
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class SaveCurrentSnapshotRequest(BaseModel):
    elements: Dict[str, Dict[str, Any]]


class SnapshotBootstrap(BaseModel):
    """초기 로드 페이로드 - 최신 스냅샷과 그 이후 작업들"""
    model_config = ConfigDict(populate_by_name=True)

    snapshot: Optional[SnapshotData] = None
    ops: List[CanvasOpData] = Field(default_factory=list)
    from_op: int = Field(alias="fromOp")


# ===== 미디어 =====

class MediaCreate(BaseModel):
    """미디어 등록 요청"""
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(min_length=1)
    storage_path: Optional[str] = Field(default=None, alias="storagePath")
    origin: str = Field(default="canvas", pattern="^(canvas|upload|imported)$")
    project_id: Optional[str] = Field(default=None, alias="projectId")
    metadata: Optional[Dict[str, Any]] = None


class MediaData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    storage_path: Optional[str] = Field(default=None, alias="storagePath")
    origin: str
    project_id: Optional[str] = Field(default=None, alias="projectId")
    referenced_by_count: int = Field(alias="referencedByCount")
    unreferenced_since: Optional[datetime] = Field(default=None, alias="unreferencedSince")
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


# ===== 프로젝트 =====

class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class CollaboratorAdd(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    role: str = Field(default="viewer", pattern="^(editor|viewer)$")


class CollaboratorData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    role: str
    joined_at: datetime = Field(alias="joinedAt")


class ProjectData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: Optional[str] = None
    owner_id: str = Field(alias="ownerId")
    collaborators: List[CollaboratorData] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)
    last_snapshot_op_index: Optional[int] = Field(default=None, alias="lastSnapshotOpIndex")
    last_snapshot_at: Optional[datetime] = Field(default=None, alias="lastSnapshotAt")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


# ===== 워커 =====

class SnapshotWorkerResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId")
    created: bool
    op_index: Optional[int] = Field(default=None, alias="opIndex")
    reason: Optional[str] = None


class MediaGCResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    media_id: str = Field(alias="mediaId")
    deleted: bool
    dry_run: bool = Field(alias="dryRun")
    reason: Optional[str] = None
