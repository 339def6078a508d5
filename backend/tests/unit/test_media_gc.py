"""
미디어 참조 카운트 / GC 테스트
"""

from datetime import timedelta

import pytest

from canvas_app.models.canvas_models import MediaCreate, OpDraft
from canvas_app.services.canvas_op_service import CanvasOpService
from canvas_app.services.blob_storage import LocalBlobStorage
from canvas_app.services.canvas_workers import CanvasWorkers
from canvas_app.services.media_gc import MediaGC, MediaGCConfig, media_to_data

from conftest import OWNER_ID, RecordingBlobStorage

GRACE = timedelta(days=7)


@pytest.fixture
def media_gc(db_session, clock, blob_storage):
    return MediaGC(db_session, clock=clock, blob_storage=blob_storage)


@pytest.mark.db
class TestReferenceCounting:
    """참조 수 증감"""

    async def test_new_media_starts_unreferenced(self, media_gc, clock):
        # When
        media = await media_gc.register_media(MediaCreate(url="/uploads/x.png", origin="upload", metadata={"width": 64}))

        # Then
        data = media_to_data(media)
        assert data.referenced_by_count == 0
        assert data.unreferenced_since == clock.now()
        assert data.metadata == {"width": 64}

    async def test_count_never_goes_negative(self, media_gc):
        """0에서 감소하면 경고만 남기고 0 유지"""
        # Given
        media = await media_gc.register_media(MediaCreate(url="/uploads/x.png"))

        # When
        first = await media_gc.decrement_ref(media.id, commit=True)
        await media_gc.increment_ref(media.id, commit=True)
        await media_gc.decrement_ref(media.id, commit=True)
        second = await media_gc.decrement_ref(media.id, commit=True)

        # Then
        assert first is False
        assert second is False
        assert (await media_gc.get_media(media.id)).referenced_by_count == 0

    async def test_unknown_media_reference_is_ignored(self, media_gc):
        assert await media_gc.increment_ref("missing") is False
        assert await media_gc.decrement_ref("missing") is False

    async def test_reference_diff_uses_net_change(self, media_gc, helpers):
        """같은 미디어를 가리키는 요소 간 이동은 증감이 상쇄된다"""
        # Given
        media = await media_gc.register_media(MediaCreate(url="/uploads/x.png"))
        before = {"a": helpers.element("a", "image", meta={"mediaId": media.id})}
        after = {"b": helpers.element("b", "image", meta={"mediaId": media.id})}

        # When
        delta = await media_gc.apply_reference_diff(before, after)

        # Then
        assert delta == {}

    async def test_reference_diff_counts_each_element(self, media_gc, helpers):
        # Given
        media = await media_gc.register_media(MediaCreate(url="/uploads/x.png"))
        after = {
            "a": helpers.element("a", "image", meta={"mediaId": media.id}),
            "b": helpers.element("b", "image", meta={"mediaId": media.id}),
        }

        # When
        delta = await media_gc.apply_reference_diff({}, after)
        await media_gc.db.commit()

        # Then
        assert delta == {media.id: 2}
        refreshed = await media_gc.get_media(media.id)
        assert refreshed.referenced_by_count == 2
        assert refreshed.unreferenced_since is None


@pytest.mark.db
class TestGarbageCollection:
    """유예 기간과 삭제"""

    async def test_grace_window_scenario(self, db_session, clock, project, media_gc, helpers):
        """참조 해제 후 유예 기간이 지나야 후보가 된다"""
        # Given - t=0 등록
        service = CanvasOpService(db_session, clock=clock, media_gc=media_gc)
        media = await media_gc.register_media(MediaCreate(url="/uploads/m1.png", storage_path="m1.png"))

        # When - t=1일 요소가 참조
        clock.advance(days=1)
        await service.append_op(project.id, OWNER_ID, OpDraft(
            type="create", data={"element": helpers.element("e1", "image", meta={"mediaId": media.id})},
        ))
        assert (await media_gc.get_media(media.id)).referenced_by_count == 1

        # Then - t=2일 후보 없음
        clock.advance(days=1)
        assert await media_gc.list_unreferenced(GRACE) == []

        # When - 요소 삭제 후 8일 경과
        await service.append_op(project.id, OWNER_ID, OpDraft(type="delete", element_id="e1"))
        assert await media_gc.list_unreferenced(GRACE) == []
        clock.advance(days=8)

        # Then
        assert [m.id for m in await media_gc.list_unreferenced(GRACE)] == [media.id]

    async def test_never_referenced_media_ages_from_registration(self, media_gc, clock):
        # Given
        media = await media_gc.register_media(MediaCreate(url="/uploads/orphan.png"))

        # When
        clock.advance(days=6)
        early = await media_gc.list_unreferenced(GRACE)
        clock.advance(days=2)
        late = await media_gc.list_unreferenced(GRACE)

        # Then
        assert early == []
        assert [m.id for m in late] == [media.id]

    async def test_gc_item_reasons(self, media_gc, clock):
        # Given
        referenced = await media_gc.register_media(MediaCreate(url="/uploads/r.png"))
        await media_gc.increment_ref(referenced.id, commit=True)
        fresh = await media_gc.register_media(MediaCreate(url="/uploads/f.png"))
        config = MediaGCConfig(grace_days=7, dry_run=False)

        # When / Then
        assert (await media_gc.gc_media_item("missing", config)).reason == "not_found"
        assert (await media_gc.gc_media_item(referenced.id, config)).reason == "referenced"
        assert (await media_gc.gc_media_item(fresh.id, config)).reason == "within_grace_period"

    async def test_dry_run_keeps_media(self, media_gc, clock, blob_storage):
        # Given
        media = await media_gc.register_media(MediaCreate(url="/uploads/d.png", storage_path="d.png"))
        clock.advance(days=8)

        # When
        result = await media_gc.gc_media_item(media.id, MediaGCConfig(grace_days=7, dry_run=True))

        # Then
        assert (result.deleted, result.dry_run, result.reason) == (False, True, "dry_run")
        assert blob_storage.deleted == []
        assert (await media_gc.get_media(media.id)).id == media.id

    async def test_delete_removes_blob_and_record(self, media_gc, clock, blob_storage):
        # Given
        media = await media_gc.register_media(MediaCreate(url="/uploads/g.png", storage_path="g.png"))
        clock.advance(days=8)

        # When
        result = await media_gc.gc_media_item(media.id, MediaGCConfig(grace_days=7, dry_run=False))

        # Then
        assert result.deleted is True
        assert blob_storage.deleted == ["g.png"]
        assert await media_gc.media.get_fresh(media.id) is None

    async def test_blob_failure_still_deletes_record(self, db_session, clock):
        # Given
        media_gc = MediaGC(db_session, clock=clock, blob_storage=RecordingBlobStorage(fail=True))
        media = await media_gc.register_media(MediaCreate(url="/uploads/h.png", storage_path="h.png"))

        # When
        deleted = await media_gc.delete(media.id)

        # Then
        assert deleted is True
        assert await media_gc.media.get_fresh(media.id) is None

    async def test_delete_skips_media_referenced_after_check(self, media_gc, blob_storage):
        """삭제 직전에 참조가 생긴 미디어는 레코드와 blob 모두 남는다"""
        # Given
        media = await media_gc.register_media(MediaCreate(url="/uploads/r.png", storage_path="r.png"))
        await media_gc.increment_ref(media.id, commit=True)

        # When
        deleted = await media_gc.delete(media.id)

        # Then
        assert deleted is False
        assert (await media_gc.media.get_fresh(media.id)).referenced_by_count == 1
        assert blob_storage.deleted == []

    async def test_batch_sweep(self, media_gc, clock, blob_storage):
        # Given
        old = await media_gc.register_media(MediaCreate(url="/uploads/old.png", storage_path="old.png"))
        clock.advance(days=5)
        young = await media_gc.register_media(MediaCreate(url="/uploads/young.png"))
        clock.advance(days=3)

        # When
        results = await media_gc.process_media_gc(MediaGCConfig(grace_days=7, batch_size=10, dry_run=False))

        # Then
        assert [(r.media_id, r.deleted) for r in results] == [(old.id, True)]
        assert await media_gc.media.get_fresh(young.id) is not None

    async def test_worker_run_uses_own_session(self, media_gc, session_factory, clock):
        # Given
        await media_gc.register_media(MediaCreate(url="/uploads/w.png"))
        clock.advance(days=8)
        workers = CanvasWorkers(session_factory, clock=clock)

        # When
        results = await workers.run_media_gc_once(MediaGCConfig(grace_days=7, dry_run=True))

        # Then
        assert [r.reason for r in results] == ["dry_run"]


@pytest.mark.unit
class TestLocalBlobStorage:
    """로컬 파일 blob 저장소"""

    async def test_delete_existing_file(self, tmp_path):
        # Given
        (tmp_path / "images").mkdir()
        target = tmp_path / "images" / "a.png"
        target.write_bytes(b"png")
        storage = LocalBlobStorage(str(tmp_path))

        # When
        first = await storage.delete("images/a.png")
        second = await storage.delete("images/a.png")

        # Then
        assert first is True
        assert second is False
        assert not target.exists()

    async def test_rejects_path_outside_base_dir(self, tmp_path):
        # Given
        base = tmp_path / "uploads"
        base.mkdir()
        outside = tmp_path / "secret.txt"
        outside.write_text("keep")
        storage = LocalBlobStorage(str(base))

        # When / Then
        with pytest.raises(ValueError):
            await storage.delete("../secret.txt")
        assert outside.exists()
