"""
Tests for the deduplicating media store.
"""

import pytest

from wa_inbox.errors import MediaStorageError, ThumbnailGenerationError
from wa_inbox.media.processing import MediaProcessor
from wa_inbox.media.store import MediaStore, file_extension, media_subdirectory
from wa_inbox.persistence.models import MediaFile, MediaFileStatus, MediaThumbnail


class FailingThumbnails(MediaProcessor):
    """Processor whose thumbnail rendering always fails."""

    def generate_thumbnail(self, source, dest, mime_type, size):
        raise ThumbnailGenerationError("renderer crashed")


@pytest.fixture
def store(media_root):
    return MediaStore(media_root)


class TestStore:
    """Tests for MediaStore.store."""

    def test_image_stored_with_thumbnails(self, db, store, media_root, jpeg_bytes):
        media_file = store.store(db, jpeg_bytes, "photo.jpg", "image/jpeg", whatsapp_media_id="m1")

        assert media_file.status == MediaFileStatus.COMPLETED.value
        assert media_file.file_path.startswith("images/")
        assert media_file.file_path.endswith(".jpg")
        assert (media_root / media_file.file_path).read_bytes() == jpeg_bytes
        assert media_file.width == 800
        assert media_file.height == 600
        assert media_file.file_size == len(jpeg_bytes)
        assert media_file.thumbnail_path == f"thumbnails/medium/{media_file.id}_medium.jpg"

        thumbnails = db.query(MediaThumbnail).filter_by(media_file_id=media_file.id).all()
        assert {t.size_type for t in thumbnails} == {"small", "medium", "large"}
        for thumbnail in thumbnails:
            assert (media_root / thumbnail.file_path).is_file()

        sizes = {t.size_type: (t.width, t.height) for t in thumbnails}
        assert sizes == {"small": (150, 150), "medium": (320, 240), "large": (640, 480)}

    def test_identical_bytes_stored_once(self, db, store, media_root, jpeg_bytes):
        first = store.store(db, jpeg_bytes, "a.jpg", "image/jpeg")
        second = store.store(db, jpeg_bytes, "b.jpg", "image/jpeg")

        assert second.id == first.id
        assert db.query(MediaFile).count() == 1
        assert len(list((media_root / "images").iterdir())) == 1

    def test_same_provider_media_id_reuses_row(self, db, store):
        first = store.store(db, b"%PDF-1.4 one", "a.pdf", "application/pdf", whatsapp_media_id="d1")
        second = store.store(db, b"%PDF-1.4 two", "a.pdf", "application/pdf", whatsapp_media_id="d1")

        assert second.id == first.id

    def test_document_has_no_thumbnails(self, db, store, media_root):
        media_file = store.store(db, b"%PDF-1.4 body", "orcamento.pdf", "application/pdf")

        assert media_file.status == MediaFileStatus.COMPLETED.value
        assert media_file.file_path.startswith("documents/")
        assert media_file.thumbnail_path is None
        assert media_file.width is None
        assert db.query(MediaThumbnail).count() == 0

    def test_thumbnail_failure_does_not_fail_store(self, db, media_root, jpeg_bytes):
        store = MediaStore(media_root, processor=FailingThumbnails())

        media_file = store.store(db, jpeg_bytes, "photo.jpg", "image/jpeg")

        assert media_file.status == MediaFileStatus.COMPLETED.value
        assert media_file.thumbnail_path is None
        assert db.query(MediaThumbnail).count() == 0

    def test_corrupt_image_still_completes(self, db, store):
        media_file = store.store(db, b"not really a jpeg", "broken.jpg", "image/jpeg")

        assert media_file.status == MediaFileStatus.COMPLETED.value
        assert media_file.thumbnail_path is None
        assert media_file.width is None

    def test_write_failure_leaves_no_row(self, db, media_root, jpeg_bytes):
        # A regular file where the images directory should be
        (media_root / "images").write_text("in the way")
        store = MediaStore(media_root)

        with pytest.raises(MediaStorageError):
            store.store(db, jpeg_bytes, "photo.jpg", "image/jpeg")

        assert db.query(MediaFile).count() == 0


class TestRestore:
    """A row whose file went missing is restored when the same bytes arrive."""

    def test_resend_restores_file_marked_failed(self, db, store, media_root, jpeg_bytes):
        first = store.store(db, jpeg_bytes, "photo.jpg", "image/jpeg")
        file_path = first.file_path
        (media_root / file_path).unlink()
        (media_root / first.thumbnail_path).unlink()
        assert store.verify_files(db) == [first.id]

        again = store.store(db, jpeg_bytes, "photo.jpg", "image/jpeg")

        assert again.id == first.id
        assert again.status == MediaFileStatus.COMPLETED.value
        assert again.file_path == file_path
        assert (media_root / again.file_path).read_bytes() == jpeg_bytes
        assert again.thumbnail_path == f"thumbnails/medium/{first.id}_medium.jpg"
        assert (media_root / again.thumbnail_path).is_file()
        assert db.query(MediaFile).count() == 1

        thumbnails = db.query(MediaThumbnail).filter_by(media_file_id=first.id).all()
        assert sorted(t.size_type for t in thumbnails) == ["large", "medium", "small"]

    def test_resend_restores_file_missing_on_disk(self, db, store, media_root):
        first = store.store(db, b"%PDF-1.4 body", "orcamento.pdf", "application/pdf")
        (media_root / first.file_path).unlink()

        again = store.store(db, b"%PDF-1.4 body", "orcamento.pdf", "application/pdf")

        assert again.id == first.id
        assert again.status == MediaFileStatus.COMPLETED.value
        assert (media_root / again.file_path).read_bytes() == b"%PDF-1.4 body"

    def test_same_media_id_with_other_bytes_is_not_restored(self, db, store, media_root):
        first = store.store(db, b"%PDF-1.4 one", "a.pdf", "application/pdf", whatsapp_media_id="d1")
        (media_root / first.file_path).unlink()

        again = store.store(db, b"%PDF-1.4 two", "a.pdf", "application/pdf", whatsapp_media_id="d1")

        assert again.id == first.id
        assert not (media_root / again.file_path).exists()


class TestConcurrentStore:
    """Same-hash insert racing a store committed by another session."""

    def test_lost_race_resolves_to_existing_row(
        self, db, session_factory, store, media_root, jpeg_bytes, monkeypatch
    ):
        other = session_factory()
        try:
            winner = store.store(other, jpeg_bytes, "a.jpg", "image/jpeg")
        finally:
            other.close()

        # The lookup ran before the other store committed
        monkeypatch.setattr(store, "find_existing", lambda *args, **kwargs: None)

        result = store.store(db, jpeg_bytes, "b.jpg", "image/jpeg")

        assert result.id == winner.id
        assert db.query(MediaFile).count() == 1
        assert [p.name for p in (media_root / "images").iterdir()] == [
            winner.file_path.split("/")[-1]
        ]
        assert [p.name for p in (media_root / "thumbnails" / "medium").iterdir()] == [
            f"{winner.id}_medium.jpg"
        ]


class TestStoreAsync:
    """Tests for MediaStore.store_async."""

    @pytest.mark.asyncio
    async def test_store_async_dedups(self, db, store, media_root, jpeg_bytes):
        media_file = await store.store_async(
            db, jpeg_bytes, "photo.jpg", "image/jpeg", whatsapp_media_id="m1"
        )
        again = await store.store_async(db, jpeg_bytes, "photo.jpg", "image/jpeg")

        assert media_file.status == MediaFileStatus.COMPLETED.value
        assert media_file.thumbnail_path == f"thumbnails/medium/{media_file.id}_medium.jpg"
        assert (media_root / media_file.thumbnail_path).is_file()
        assert again.id == media_file.id
        assert db.query(MediaThumbnail).count() == 3

    @pytest.mark.asyncio
    async def test_store_async_write_failure(self, db, media_root, jpeg_bytes):
        (media_root / "images").write_text("in the way")
        store = MediaStore(media_root)

        with pytest.raises(MediaStorageError):
            await store.store_async(db, jpeg_bytes, "photo.jpg", "image/jpeg")

        assert db.query(MediaFile).count() == 0


class TestMaintenance:
    """Tests for cleanup and verification."""

    def test_cleanup_older_than(self, db, store, media_root, jpeg_bytes):
        media_file = store.store(db, jpeg_bytes, "photo.jpg", "image/jpeg")
        file_path = media_root / media_file.file_path

        assert store.cleanup_older_than(db, days=30) == 0
        assert file_path.exists()

        assert store.cleanup_older_than(db, days=-1) == 1
        assert not file_path.exists()
        assert not (media_root / media_file.thumbnail_path).exists()
        assert db.query(MediaFile).count() == 0
        assert db.query(MediaThumbnail).count() == 0

    def test_verify_files_marks_missing(self, db, store, media_root):
        kept = store.store(db, b"keep me", "a.txt", "text/plain")
        lost = store.store(db, b"lose me", "b.txt", "text/plain")
        (media_root / lost.file_path).unlink()

        assert store.verify_files(db) == [lost.id]

        db.refresh(kept)
        db.refresh(lost)
        assert kept.status == MediaFileStatus.COMPLETED.value
        assert lost.status == MediaFileStatus.FAILED.value

    def test_resolve_path_rejects_traversal(self, store):
        with pytest.raises(ValueError):
            store.resolve_path("../../etc/passwd")


class TestNaming:
    @pytest.mark.parametrize(
        "mime_type,expected",
        [
            ("image/jpeg", "images"),
            ("video/mp4", "videos"),
            ("audio/ogg; codecs=opus", "audio"),
            ("application/pdf", "documents"),
            ("", "documents"),
        ],
    )
    def test_media_subdirectory(self, mime_type, expected):
        assert media_subdirectory(mime_type) == expected

    def test_extension_from_filename(self):
        assert file_extension("Report.PDF", "application/octet-stream") == ".pdf"

    def test_extension_from_mime_type(self):
        assert file_extension("media_m1", "audio/ogg; codecs=opus") == ".ogg"

    def test_extension_fallback(self):
        assert file_extension(None, "application/x-unknown") == ".bin"


class TestStats:
    def test_stats(self, db, store, jpeg_bytes):
        store.store(db, jpeg_bytes, "photo.jpg", "image/jpeg")
        store.store(db, b"%PDF-1.4", "a.pdf", "application/pdf")

        stats = store.stats(db)

        assert stats["total_files"] == 2
        assert stats["total_size"] == len(jpeg_bytes) + len(b"%PDF-1.4")
        assert stats["images"] == 1
        assert stats["videos"] == 0
        assert stats["completed"] == 2
        assert stats["failed"] == 0
        assert stats["with_thumbnails"] == 1
        assert stats["total_thumbnails"] == 3
        assert stats["total_thumbnail_size"] > 0

    def test_stats_empty(self, db, store):
        stats = store.stats(db)

        assert stats["total_files"] == 0
        assert stats["total_size"] == 0
        assert stats["total_thumbnail_size"] == 0
