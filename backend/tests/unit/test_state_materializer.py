"""
요소 상태 반영(materializer) 테스트
"""

import pytest

from canvas_app.models.canvas_models import OpDraft, normalize_element
from canvas_app.services.media_gc import MediaGC
from canvas_app.services.state_materializer import (
    StateMaterializer,
    affected_element_ids,
    apply,
    diff_elements,
    replay,
)
from canvas_app.models.canvas_models import MediaCreate


def op(op_type, data=None, **kwargs):
    return OpDraft(type=op_type, data=data or {}, **kwargs)


@pytest.fixture
def base_elements(helpers):
    return {
        "e1": helpers.element("e1", x=10.0, y=10.0, width=100.0, height=50.0),
        "e2": helpers.element("e2", "text", x=200.0, y=40.0, meta={"text": "안녕"}),
    }


@pytest.mark.unit
class TestApplyPerType:
    """op 타입별 적용 규칙"""

    def test_apply_does_not_mutate_input(self, base_elements):
        # Given
        original = {key: dict(value) for key, value in base_elements.items()}

        # When
        apply(base_elements, op("move", {"delta": {"x": 5, "y": 5}}, element_id="e1"))

        # Then
        assert base_elements == original

    def test_create_upserts_payload_as_is(self, helpers):
        # Given
        element = helpers.element("e1", "image", x=10.0, y=10.0, meta={"mediaId": "m1"}, customFlag=True)

        # When
        result = apply({}, op("create", {"element": element}))

        # Then
        assert result == {"e1": element}

    def test_create_multiple_elements(self, helpers):
        # When
        result = apply({}, op("create", {"elements": [helpers.element("a"), helpers.element("b")]}))

        # Then
        assert set(result) == {"a", "b"}

    def test_update_merges_shallow_fields(self, base_elements):
        # When
        result = apply(base_elements, op("update", {"updates": {"width": 300.0, "label": "제목"}}, element_id="e1"))

        # Then
        assert result["e1"]["width"] == 300.0
        assert result["e1"]["label"] == "제목"
        assert result["e1"]["height"] == 50.0

    def test_update_none_removes_field(self, base_elements):
        # When
        result = apply(base_elements, op("update", {"updates": {"height": None}}, element_id="e1"))

        # Then
        assert "height" not in result["e1"]

    def test_update_missing_element_is_noop(self, base_elements):
        # When
        result = apply(base_elements, op("update", {"updates": {"width": 1.0}}, element_id="ghost"))

        # Then
        assert result == base_elements

    def test_delete_ignores_missing_ids(self, base_elements):
        # When
        result = apply(base_elements, op("delete", element_ids=["e1", "ghost"]))

        # Then
        assert set(result) == {"e2"}

    def test_move_skips_missing_but_moves_others(self, base_elements):
        """없는 요소는 건너뛰고 나머지는 이동"""
        # When
        result = apply(base_elements, op("move", {"delta": {"x": 5, "y": -5}}, element_ids=["e1", "ghost", "e2"]))

        # Then
        assert (result["e1"]["x"], result["e1"]["y"]) == (15.0, 5.0)
        assert (result["e2"]["x"], result["e2"]["y"]) == (205.0, 35.0)
        assert "ghost" not in result

    def test_resize_ignores_non_geometry_fields(self, base_elements):
        # Given
        draft = op("resize", {"updates": {"width": 10.0, "rotation": 90.0}}, element_id="e1")
        draft.data["updates"]["meta"] = {"hacked": True}

        # When
        result = apply(base_elements, draft)

        # Then
        assert result["e1"]["width"] == 10.0
        assert result["e1"]["rotation"] == 90.0
        assert "meta" not in result["e1"]

    def test_layer_sets_z_index(self, base_elements):
        result = apply(base_elements, op("layer", {"updates": {"zIndex": 7}}, element_id="e2"))
        assert result["e2"]["zIndex"] == 7

    def test_style_merges_into_meta(self, base_elements):
        # When
        result = apply(base_elements, op("style", {"style": {"fill": "#ff0000", "text": None}}, element_id="e2"))

        # Then
        assert result["e2"]["meta"] == {"fill": "#ff0000"}

    def test_select_and_deselect_track_actor(self, base_elements):
        # When
        selected = apply(base_elements, op("select", {"selectedBy": "u1"}, element_id="e1"))
        selected = apply(selected, op("select", {"selectedBy": "u2"}, element_id="e1"))
        reselected = apply(selected, op("select", {"selectedBy": "u1"}, element_id="e1"))
        deselected = apply(reselected, op("deselect", {"selectedBy": "u1"}, element_id="e1"))

        # Then
        assert selected["e1"]["meta"]["selectedBy"] == ["u1", "u2"]
        assert reselected == selected
        assert deselected["e1"]["meta"]["selectedBy"] == ["u2"]

    def test_deselect_last_actor_removes_meta(self, base_elements):
        # Given
        selected = apply(base_elements, op("select", {"selectedBy": "u1"}, element_id="e1"))

        # When
        result = apply(selected, op("deselect", {"selectedBy": "u1"}, element_id="e1"))

        # Then
        assert result == base_elements

    def test_connect_creates_connector_without_touching_endpoints(self, base_elements):
        # When
        result = apply(base_elements, op("connect", {
            "connectorId": "c1",
            "fromId": "e1",
            "toId": "e2",
            "fromAnchor": "right",
        }))

        # Then
        assert result["c1"]["type"] == "connector"
        assert result["c1"]["meta"] == {"connectorFrom": "e1", "connectorTo": "e2", "fromAnchor": "right"}
        assert result["e1"] == base_elements["e1"]
        assert result["e2"] == base_elements["e2"]

    def test_disconnect_only_removes_connectors(self, base_elements):
        # Given
        connected = apply(base_elements, op("connect", {"connectorId": "c1", "fromId": "e1", "toId": "e2"}))

        # When
        result = apply(connected, op("disconnect", element_ids=["c1", "e1"]))

        # Then
        assert "c1" not in result
        assert "e1" in result


@pytest.mark.unit
class TestGroupScenario:
    """group/ungroup 시나리오"""

    def test_group_then_ungroup(self, base_elements):
        """g1 그룹 생성 시 멤버에 groupId가 찍히고 ungroup 시 지워진다"""
        # Given
        group = {"id": "g1", "type": "group", "x": 0.0, "y": 0.0, "meta": {"memberElementIds": ["e1", "e2"]}}

        # When
        grouped = apply(base_elements, op("group", {"element": group}))
        ungrouped = apply(grouped, op("ungroup", element_id="g1"))

        # Then
        assert grouped["g1"] == group
        assert grouped["e1"]["meta"]["groupId"] == "g1"
        assert grouped["e2"]["meta"] == {"text": "안녕", "groupId": "g1"}
        assert "g1" not in ungrouped
        assert "meta" not in ungrouped["e1"]
        assert ungrouped["e2"]["meta"] == {"text": "안녕"}

    def test_ungroup_leaves_members_regrouped_elsewhere(self, base_elements):
        """다른 그룹으로 옮겨진 멤버의 groupId는 건드리지 않는다"""
        # Given
        g1 = {"id": "g1", "type": "group", "meta": {"memberElementIds": ["e1", "e2"]}}
        g2 = {"id": "g2", "type": "group", "meta": {"memberElementIds": ["e2"]}}
        state = replay([op("group", {"element": g1}), op("group", {"element": g2})], base_elements)

        # When
        result = apply(state, op("ungroup", element_id="g1"))

        # Then
        assert result["e2"]["meta"]["groupId"] == "g2"
        assert "meta" not in result["e1"]

    def test_affected_ids_for_group_include_members(self):
        # Given
        draft = op("group", {"element": {"id": "g1", "type": "group", "meta": {"memberElementIds": ["a", "b"]}}})

        # Then
        assert affected_element_ids(draft) == ["g1", "a", "b"]


@pytest.mark.unit
def test_diff_elements_reports_changes_only():
    # Given
    before = {"a": {"id": "a", "type": "shape"}, "b": {"id": "b", "type": "shape"}}
    after = {"a": {"id": "a", "type": "shape"}, "c": {"id": "c", "type": "shape"}}

    # When
    upserts, deletes = diff_elements(before, after)

    # Then
    assert upserts == [{"id": "c", "type": "shape"}]
    assert deletes == ["b"]


@pytest.mark.unit
class TestElementNormalization:
    """재생 결과와 projection이 같은 형태를 갖도록 하는 정규화"""

    def test_normalize_drops_none_and_casts_numeric_fields(self):
        # When
        normalized = normalize_element({"id": "e1", "type": "shape", "x": 1, "y": 2, "width": None, "zIndex": 3, "visible": True})

        # Then
        assert normalized == {"id": "e1", "type": "shape", "x": 1.0, "y": 2.0, "zIndex": 3, "visible": True}
        assert isinstance(normalized["x"], float)
        assert isinstance(normalized["zIndex"], int)

    def test_replay_with_null_and_absent_fields(self, helpers):
        """null 필드는 없는 필드와 같고, update의 None은 필드 제거"""
        # Given
        ops = [
            op("create", {"element": {"id": "e1", "type": "shape", "x": 1, "y": 2, "width": None}}),
            op("update", {"updates": {"height": 40, "label": "라벨"}}, element_id="e1"),
            op("update", {"updates": {"label": None}}, element_id="e1"),
        ]

        # When
        result = replay(ops)

        # Then
        assert result == {"e1": {"id": "e1", "type": "shape", "x": 1.0, "y": 2.0, "height": 40.0}}
        assert isinstance(result["e1"]["height"], float)

@pytest.mark.db
class TestStateMaterializer:
    """projection 기록 테스트"""

    async def test_materialize_round_trips_element_shape(self, db_session, clock, project, helpers):
        """컬럼/attrs로 나뉘어 저장된 요소가 원래 dict 그대로 읽힌다"""
        # Given
        materializer = StateMaterializer(db_session, clock=clock)
        element = helpers.element(
            "e1", "image", x=1.5, y=2.5, width=10.0, scaleX=2.0, zIndex=3, visible=True,
            meta={"mediaId": "m-none", "caption": "사진"}, cornerRadius=4,
        )

        # When
        await materializer.materialize(project.id, op("create", {"element": element}))
        stored = await materializer.elements.list_all(project.id)

        # Then
        assert stored == {"e1": element}

    async def test_materialize_writes_upserts_and_deletes(self, db_session, clock, project, helpers):
        # Given
        materializer = StateMaterializer(db_session, clock=clock)
        await materializer.materialize(project.id, op("create", {"elements": [helpers.element("a"), helpers.element("b")]}))

        # When
        result = await materializer.materialize(project.id, op("delete", element_id="a"))

        # Then
        assert result.deleted == 1
        assert set(await materializer.elements.list_all(project.id)) == {"b"}

    async def test_materialize_updates_media_reference_counts(self, db_session, clock, project, helpers, blob_storage):
        """요소의 meta.mediaId 변화가 참조 수에 반영된다"""
        # Given
        media_gc = MediaGC(db_session, clock=clock, blob_storage=blob_storage)
        m1 = await media_gc.register_media(MediaCreate(url="/uploads/m1.png"))
        m2 = await media_gc.register_media(MediaCreate(url="/uploads/m2.png"))
        materializer = StateMaterializer(db_session, clock=clock, media_gc=media_gc)

        # When
        await materializer.materialize(project.id, op("create", {"element": helpers.element("e1", "image", meta={"mediaId": m1.id})}))
        await materializer.materialize(project.id, op("update", {"updates": {"meta": {"mediaId": m2.id}}}, element_id="e1"))

        # Then
        assert (await media_gc.get_media(m1.id)).referenced_by_count == 0
        assert (await media_gc.get_media(m2.id)).referenced_by_count == 1

    async def test_reconcile_replaces_drifted_projection(self, db_session, clock, project, helpers):
        # Given
        materializer = StateMaterializer(db_session, clock=clock)
        await materializer.materialize(project.id, op("create", {"element": helpers.element("stale")}))
        target = {"fresh": helpers.element("fresh", x=3.0)}

        # When
        result = await materializer.reconcile(project.id, target)

        # Then
        assert result.upserted == 1
        assert result.deleted == 1
        assert await materializer.elements.list_all(project.id) == target

    async def test_projection_matches_replay_with_null_fields(self, db_session, clock, project):
        """null/정수 필드가 섞여도 projection과 재생 결과가 같아 reconcile이 아무것도 바꾸지 않는다"""
        # Given
        materializer = StateMaterializer(db_session, clock=clock)
        ops = [
            op("create", {"element": {"id": "e1", "type": "shape", "x": 1, "y": 2, "width": None, "opacity": 1}}),
            op("update", {"updates": {"rotation": 90, "visible": None}}, element_id="e1"),
        ]
        for draft in ops:
            await materializer.materialize(project.id, draft)

        # When
        live = await materializer.elements.list_all(project.id)
        result = await materializer.reconcile(project.id, replay(ops))

        # Then
        assert live == replay(ops)
        assert (result.upserted, result.deleted) == (0, 0)
