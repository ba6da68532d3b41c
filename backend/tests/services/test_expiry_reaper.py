"""
Cascading cleanup of expired and deleted zones.
"""

import io
import os
import time
from datetime import timedelta

from sqlalchemy import delete

from sharezone import crud
from sharezone.db.session import engine
from sharezone.models import ChatMessage, FileRecord, UploadBatch, UserSession, Zone
from sharezone.services import IncomingFile
from sharezone.utils.timeutils import utcnow


def _populate(db, registry, coordinator, chat, zone):
    registry.join_zone(db, zone_name=zone.zone_name, password="secret123", username="bob")
    coordinator.submit_upload(
        db,
        zone.id,
        uploader_username="bob",
        message="notes",
        files=[
            IncomingFile("a.pdf", "application/pdf", io.BytesIO(b"aaa")),
            IncomingFile("b.png", "image/png", io.BytesIO(b"bbb")),
        ],
    )
    chat.post_message(db, zone.id, username="bob", text="hello")


def _expire(db, zone_id):
    db.query(Zone).filter(Zone.id == zone_id).update({Zone.expires_at: utcnow() - timedelta(minutes=5)})
    db.commit()


def _rows(db, zone_id):
    return {
        "zones": db.query(Zone).filter(Zone.id == zone_id).count(),
        "batches": db.query(UploadBatch).filter(UploadBatch.zone_id == zone_id).count(),
        "files": db.query(FileRecord).filter(FileRecord.zone_id == zone_id).count(),
        "sessions": db.query(UserSession).filter(UserSession.zone_id == zone_id).count(),
        "chat": db.query(ChatMessage).filter(ChatMessage.zone_id == zone_id).count(),
    }


def _upload(db, coordinator, zone_id, name):
    batch = coordinator.submit_upload(
        db, zone_id, uploader_username="bob", message=None,
        files=[IncomingFile(name, "application/pdf", io.BytesIO(b"data"))],
    )
    return batch.files[0].storage_handle


def _drop_zone_row(zone_id):
    # Deletes only the zone row, leaving its dependent rows behind
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        conn.execute(delete(Zone).where(Zone.id == zone_id))
        conn.commit()
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")


EMPTY = {"zones": 0, "batches": 0, "files": 0, "sessions": 0, "chat": 0}


class TestCleanupZone:
    """The shared purge used by delete and sweep."""

    def test_purges_rows_and_blobs(self, db, registry, coordinator, chat, reaper, storage, hub, zone_with_owner):
        zone, _ = zone_with_owner
        zone_id = zone.id
        _populate(db, registry, coordinator, chat, zone)
        assert len(list(storage.iter_blobs())) == 2

        assert reaper.cleanup_zone(db, zone_id, reason="expired") is True

        assert _rows(db, zone_id) == EMPTY
        assert list(storage.iter_blobs()) == []
        hub.close_zone.assert_called_once_with(zone_id, "expired")

    def test_idempotent(self, db, registry, coordinator, chat, reaper, storage, zone_with_owner):
        zone, _ = zone_with_owner
        zone_id = zone.id
        _populate(db, registry, coordinator, chat, zone)

        assert reaper.cleanup_zone(db, zone_id) is True
        assert reaper.cleanup_zone(db, zone_id) is True
        assert _rows(db, zone_id) == EMPTY

    def test_already_missing_blob_is_not_an_error(self, db, registry, coordinator, chat, reaper, storage, zone_with_owner):
        zone, _ = zone_with_owner
        zone_id = zone.id
        _populate(db, registry, coordinator, chat, zone)
        for handle in crud.file.get_handles_by_zone(db, zone_id=zone_id):
            storage.delete(handle)

        assert reaper.cleanup_zone(db, zone_id) is True
        assert _rows(db, zone_id) == EMPTY

    def test_storage_failure_does_not_block_rows(
        self, db, registry, coordinator, chat, reaper, storage, zone_with_owner, monkeypatch
    ):
        zone, _ = zone_with_owner
        zone_id = zone.id
        _populate(db, registry, coordinator, chat, zone)

        def broken_delete(handle):
            raise OSError("device busy")

        monkeypatch.setattr(storage, "delete", broken_delete)
        assert reaper.cleanup_zone(db, zone_id) is True
        assert _rows(db, zone_id) == EMPTY

    def test_concurrent_cleanup_of_same_zone_is_skipped(self, db, reaper, hub, zone_with_owner):
        zone, _ = zone_with_owner
        reaper._in_progress.add(zone.id)

        assert reaper.cleanup_zone(db, zone.id) is False
        assert db.query(Zone).filter(Zone.id == zone.id).count() == 1
        hub.close_zone.assert_not_called()


class TestSweep:
    """Periodic sweep over expired and soft-deleted zones."""

    def test_sweeps_expired_and_deleted_only(self, db, registry, coordinator, chat, reaper, storage, zone_with_owner):
        expired, _ = zone_with_owner
        expired_id = expired.id
        _populate(db, registry, coordinator, chat, expired)
        _expire(db, expired_id)

        deleted, _ = registry.create_zone(db, zone_name="gone", password="pw", duration_hours=1, owner_username="x")
        deleted_id = deleted.id
        crud.zone.mark_deleted(db, zone=deleted)

        live, _ = registry.create_zone(db, zone_name="live", password="pw", duration_hours=1, owner_username="y")
        live_id = live.id

        assert reaper.sweep() == 2

        db.expire_all()
        assert _rows(db, expired_id) == EMPTY
        assert _rows(db, deleted_id) == EMPTY
        assert _rows(db, live_id)["zones"] == 1
        assert list(storage.iter_blobs()) == []

    def test_one_failing_zone_does_not_stop_others(self, db, registry, reaper, zone_with_owner, monkeypatch):
        first, _ = zone_with_owner
        second, _ = registry.create_zone(db, zone_name="two", password="pw", duration_hours=1, owner_username="y")
        first_id, second_id = first.id, second.id
        _expire(db, first_id)
        _expire(db, second_id)

        real_cleanup = reaper.cleanup_zone

        def flaky_cleanup(db, zone_id, *, reason="deleted"):
            if zone_id == first_id:
                raise RuntimeError("boom")
            return real_cleanup(db, zone_id, reason=reason)

        monkeypatch.setattr(reaper, "cleanup_zone", flaky_cleanup)
        assert reaper.sweep() == 1

        db.expire_all()
        assert _rows(db, first_id)["zones"] == 1
        assert _rows(db, second_id) == EMPTY

    def test_nothing_to_do(self, reaper):
        assert reaper.sweep() == 0


class TestOrphanSweep:
    """Blobs that no record points at are reclaimed after a grace period."""

    def test_removes_old_unreferenced_blobs_only(self, db, registry, coordinator, reaper, storage, zone_with_owner):
        zone, _ = zone_with_owner
        batch = coordinator.submit_upload(
            db, zone.id, uploader_username="bob", message=None,
            files=[IncomingFile("kept.pdf", "application/pdf", io.BytesIO(b"keep"))],
        )
        kept = batch.files[0].storage_handle
        orphan = storage.put(io.BytesIO(b"orphan"), "application/pdf", "orphan.pdf")
        fresh_orphan = storage.put(io.BytesIO(b"new"), "application/pdf", "new.pdf")

        # Age everything except the fresh orphan past the grace period
        old = time.time() - 2 * 3600
        for handle in (kept, orphan):
            path = storage.get(handle).path
            os.utime(path, (old, old))

        assert reaper.sweep_orphans(db) == 1

        remaining = {handle for handle, _ in storage.iter_blobs()}
        assert remaining == {kept, fresh_orphan}


class TestVanishedZoneRecords:
    """Records whose zone row is already gone are reclaimed by the sweep."""

    def test_sweep_removes_records_and_blobs(self, db, registry, coordinator, reaper, storage, zone_with_owner):
        zone, _ = zone_with_owner
        zone_id = zone.id
        _upload(db, coordinator, zone_id, "lost.pdf")

        live, _ = registry.create_zone(db, zone_name="live", password="pw", duration_hours=1, owner_username="y")
        live_id = live.id
        kept = _upload(db, coordinator, live_id, "kept.pdf")

        _drop_zone_row(zone_id)
        assert reaper.sweep() == 0

        db.expire_all()
        rows = _rows(db, zone_id)
        assert (rows["batches"], rows["files"]) == (0, 0)
        assert _rows(db, live_id)["files"] == 1
        assert {handle for handle, _ in storage.iter_blobs()} == {kept}

    def test_nothing_to_remove(self, db, reaper):
        assert reaper.sweep_orphan_records(db) == 0


def test_start_and_stop(reaper):
    reaper.start()
    assert reaper._thread.is_alive()
    thread = reaper._thread

    reaper.stop(timeout=5)
    assert not thread.is_alive()
    assert reaper._thread is None
