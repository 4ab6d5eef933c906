"""
Media Store

Content-addressable storage for downloaded media:
- SHA-256 deduplication (identical bytes are stored once)
- Files laid out under MEDIA_ROOT by mime family
- Metadata extraction and thumbnail generation for images and videos
- Cleanup and on-disk verification for maintenance jobs

Storing is split in two phases. `stage()` touches only the filesystem
(write, ffprobe, Pillow, ffmpeg) and may run in a worker thread;
`record()` inserts the rows in one transaction and stays on the caller's
thread with its session.
"""

import asyncio
import hashlib
import logging
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wa_inbox.errors import MediaStorageError
from wa_inbox.media.processing import (
    PRIMARY_THUMBNAIL_SIZE,
    THUMBNAIL_SIZES,
    MediaMetadata,
    MediaProcessor,
    ThumbnailResult,
    base_mime_type,
    is_image,
    is_video,
)
from wa_inbox.persistence.models import MediaFile, MediaFileStatus
from wa_inbox.persistence.repo import InboxRepository

logger = logging.getLogger(__name__)

MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
    "video/3gpp": ".3gp",
    "audio/mpeg": ".mp3",
    "audio/ogg": ".ogg",
    "audio/wav": ".wav",
    "audio/aac": ".aac",
    "audio/mp4": ".m4a",
    "application/pdf": ".pdf",
    "text/plain": ".txt",
}
DEFAULT_EXTENSION = ".bin"

THUMBNAIL_DIR = "thumbnails"

# size_type -> (relative path, rendered thumbnail)
RenderedThumbnails = dict[str, tuple[str, ThumbnailResult]]


def compute_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def media_subdirectory(mime_type: str) -> str:
    """Map a mime type to its storage family."""
    family = base_mime_type(mime_type).split("/", 1)[0]
    if family == "image":
        return "images"
    if family == "video":
        return "videos"
    if family == "audio":
        return "audio"
    return "documents"


def file_extension(original_filename: str | None, mime_type: str) -> str:
    suffix = Path(original_filename or "").suffix.lower()
    if suffix and len(suffix) <= 10:
        return suffix
    return MIME_EXTENSIONS.get(base_mime_type(mime_type), DEFAULT_EXTENSION)


def generate_filename(original_filename: str | None, mime_type: str) -> str:
    """`<epoch-ms>_<random><ext>`."""
    ext = file_extension(original_filename, mime_type)
    return f"{int(time.time() * 1000)}_{secrets.token_hex(6)}{ext}"


@dataclass
class StagedMedia:
    """Files written for a blob that has no MediaFile row yet."""

    file_hash: str
    file_path: str
    original_filename: str | None
    mime_type: str
    file_size: int
    metadata: MediaMetadata
    # Rendered under a name derived from the file, renamed once the row id is known
    thumbnails: RenderedThumbnails = field(default_factory=dict)


class MediaStore:
    """
    Persists media blobs and their MediaFile rows.

    A row whose file went missing (or that was marked `failed`) is restored
    in place when the same bytes arrive again.
    """

    def __init__(self, media_root: str | Path, processor: MediaProcessor | None = None):
        self.media_root = Path(media_root)
        self.processor = processor or MediaProcessor()

    def resolve_path(self, relative_path: str) -> Path:
        """
        Absolute path for a stored relative path.

        Raises:
            ValueError: if the path escapes the media root
        """
        root = self.media_root.resolve()
        path = (root / relative_path).resolve()
        if root != path and root not in path.parents:
            raise ValueError(f"Path outside media root: {relative_path}")
        return path

    def thumbnail_relative_path(self, stem: int | str, size_type: str) -> str:
        return f"{THUMBNAIL_DIR}/{size_type}/{stem}_{size_type}.jpg"

    # =========================================================================
    # Storing
    # =========================================================================

    def store(
        self,
        db: Session,
        content: bytes,
        original_filename: str | None,
        mime_type: str,
        whatsapp_media_id: str | None = None,
    ) -> MediaFile:
        """
        Store a media blob, deduplicating by content hash.

        Returns the existing MediaFile when the same bytes (or the same
        provider media id) were stored before.

        Raises:
            MediaStorageError: the primary file could not be written
        """
        file_hash = compute_hash(content)

        existing = self.find_existing(db, file_hash, whatsapp_media_id)
        if existing is not None:
            if not self.needs_restore(existing, file_hash):
                return existing
            try:
                thumbnails = self.restore_files(
                    existing.id, existing.file_path, existing.mime_type, content
                )
            except MediaStorageError:
                db.rollback()
                raise
            return self.finish_restore(db, existing, thumbnails)

        try:
            staged = self.stage(content, original_filename, mime_type, file_hash)
        except MediaStorageError:
            db.rollback()
            raise
        return self.record(db, staged, whatsapp_media_id)

    async def store_async(
        self,
        db: Session,
        content: bytes,
        original_filename: str | None,
        mime_type: str,
        whatsapp_media_id: str | None = None,
    ) -> MediaFile:
        """`store()` with the filesystem phase in a worker thread."""
        file_hash = await asyncio.to_thread(compute_hash, content)

        existing = self.find_existing(db, file_hash, whatsapp_media_id)
        if existing is not None:
            if not self.needs_restore(existing, file_hash):
                return existing
            try:
                thumbnails = await asyncio.to_thread(
                    self.restore_files,
                    existing.id,
                    existing.file_path,
                    existing.mime_type,
                    content,
                )
            except MediaStorageError:
                db.rollback()
                raise
            return self.finish_restore(db, existing, thumbnails)

        try:
            staged = await asyncio.to_thread(
                self.stage, content, original_filename, mime_type, file_hash
            )
        except MediaStorageError:
            db.rollback()
            raise
        return self.record(db, staged, whatsapp_media_id)

    def find_existing(
        self,
        db: Session,
        file_hash: str,
        whatsapp_media_id: str | None = None,
    ) -> MediaFile | None:
        """Look up a stored file by content hash, then by provider media id."""
        repo = InboxRepository(db)

        existing = repo.get_media_file_by_hash(file_hash)
        if existing:
            logger.info(
                "Duplicate media found, reusing stored file",
                extra={"media_file_id": existing.id, "file_hash": file_hash},
            )
            return existing

        if whatsapp_media_id:
            existing = repo.get_media_file_by_whatsapp_id(whatsapp_media_id)
            if existing:
                logger.info(
                    "Media already stored for provider id",
                    extra={"media_file_id": existing.id, "whatsapp_media_id": whatsapp_media_id},
                )
                return existing

        return None

    def needs_restore(self, media_file: MediaFile, file_hash: str) -> bool:
        """True when `media_file` holds these bytes but its file is gone or marked failed."""
        if media_file.file_hash != file_hash:
            return False
        if media_file.status == MediaFileStatus.FAILED.value:
            return True
        return not (self.media_root / media_file.file_path).is_file()

    def stage(
        self,
        content: bytes,
        original_filename: str | None,
        mime_type: str,
        file_hash: str,
    ) -> StagedMedia:
        """
        Write the primary file, read its metadata and render thumbnails.

        Filesystem only; no database access.

        Raises:
            MediaStorageError: the primary file could not be written
        """
        relative_path = f"{media_subdirectory(mime_type)}/{generate_filename(original_filename, mime_type)}"
        full_path = self.media_root / relative_path

        self._write(full_path, content, relative_path)

        try:
            metadata = self.processor.extract_metadata(full_path, mime_type)
            thumbnails: RenderedThumbnails = {}
            if is_image(mime_type) or is_video(mime_type):
                thumbnails = self._render_thumbnails(full_path, mime_type, full_path.stem)
        except Exception:
            self._remove_files([full_path])
            raise

        return StagedMedia(
            file_hash=file_hash,
            file_path=relative_path,
            original_filename=original_filename,
            mime_type=mime_type,
            file_size=len(content),
            metadata=metadata,
            thumbnails=thumbnails,
        )

    def record(
        self,
        db: Session,
        staged: StagedMedia,
        whatsapp_media_id: str | None = None,
    ) -> MediaFile:
        """
        Insert the MediaFile and thumbnail rows for staged files and commit.

        A concurrent insert of the same hash resolves to the existing row;
        the staged files are removed.
        """
        repo = InboxRepository(db)
        written: list[Path] = [self.media_root / staged.file_path]
        written += [self.media_root / path for path, _ in staged.thumbnails.values()]

        try:
            media_file = repo.create_media_file(
                whatsapp_media_id=whatsapp_media_id,
                original_filename=staged.original_filename,
                file_path=staged.file_path,
                mime_type=staged.mime_type,
                file_size=staged.file_size,
                width=staged.metadata.width,
                height=staged.metadata.height,
                duration=staged.metadata.duration,
                file_hash=staged.file_hash,
            )
            media_file.thumbnail_path = self._place_thumbnails(repo, media_file, staged, written)
            media_file.status = MediaFileStatus.COMPLETED.value
            db.commit()
        except IntegrityError:
            db.rollback()
            self._remove_files(written)
            # Lost a race against a concurrent store of the same media
            existing = repo.get_media_file_by_hash(staged.file_hash)
            if existing is None and whatsapp_media_id:
                existing = repo.get_media_file_by_whatsapp_id(whatsapp_media_id)
            if existing is None:
                raise
            logger.info(
                "Concurrent store resolved to existing media",
                extra={"media_file_id": existing.id, "file_hash": staged.file_hash},
            )
            return existing
        except Exception:
            db.rollback()
            self._remove_files(written)
            raise

        logger.info(
            "Media file stored",
            extra={
                "media_file_id": media_file.id,
                "file_path": staged.file_path,
                "mime_type": staged.mime_type,
                "file_size": staged.file_size,
            },
        )
        return media_file

    def restore_files(
        self,
        media_file_id: int,
        file_path: str,
        mime_type: str,
        content: bytes,
    ) -> RenderedThumbnails:
        """
        Rewrite a stored file at its recorded path and re-render its thumbnails.

        Filesystem only; no database access.
        """
        full_path = self.media_root / file_path
        self._write(full_path, content, file_path)

        if is_image(mime_type) or is_video(mime_type):
            return self._render_thumbnails(full_path, mime_type, media_file_id)
        return {}

    def finish_restore(
        self,
        db: Session,
        media_file: MediaFile,
        thumbnails: RenderedThumbnails,
    ) -> MediaFile:
        """Replace the thumbnail rows of a restored file and mark it `completed`."""
        repo = InboxRepository(db)
        repo.delete_thumbnails(media_file)

        media_file.thumbnail_path = None
        for size_type, (relative_path, result) in thumbnails.items():
            repo.add_thumbnail(
                media_file,
                size_type=size_type,
                width=result.width,
                height=result.height,
                file_path=relative_path,
                file_size=result.file_size,
            )
            if size_type == PRIMARY_THUMBNAIL_SIZE:
                media_file.thumbnail_path = relative_path

        media_file.status = MediaFileStatus.COMPLETED.value
        db.commit()

        logger.info(
            "Restored missing media file",
            extra={"media_file_id": media_file.id, "file_path": media_file.file_path},
        )
        return media_file

    def _write(self, full_path: Path, content: bytes, relative_path: str) -> None:
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(content)
        except OSError as e:
            logger.error(f"Failed to write media file: {e}", extra={"path": str(full_path)})
            raise MediaStorageError(f"Failed to write {relative_path}: {e}") from e

    def _render_thumbnails(
        self,
        source: Path,
        mime_type: str,
        stem: int | str,
    ) -> RenderedThumbnails:
        """Render every thumbnail size; sizes that fail are skipped."""
        rendered: RenderedThumbnails = {}
        for size_type, dimensions in THUMBNAIL_SIZES.items():
            relative_path = self.thumbnail_relative_path(stem, size_type)
            # Thumbnail failures never fail the parent store
            try:
                result = self.processor.generate_thumbnail(
                    source, self.media_root / relative_path, mime_type, dimensions
                )
            except Exception as e:
                logger.warning(
                    f"Thumbnail generation failed: {e}",
                    extra={"source": str(source), "size_type": size_type},
                )
                continue
            rendered[size_type] = (relative_path, result)
        return rendered

    def _place_thumbnails(
        self,
        repo: InboxRepository,
        media_file: MediaFile,
        staged: StagedMedia,
        written: list[Path],
    ) -> str | None:
        """Move staged thumbnails to their id-based paths; return the primary one."""
        primary: str | None = None
        for size_type, (staged_path, result) in staged.thumbnails.items():
            relative_path = self.thumbnail_relative_path(media_file.id, size_type)
            dest = self.media_root / relative_path
            try:
                (self.media_root / staged_path).replace(dest)
            except OSError as e:
                logger.warning(
                    f"Could not place thumbnail: {e}",
                    extra={"media_file_id": media_file.id, "size_type": size_type},
                )
                continue

            written.append(dest)
            repo.add_thumbnail(
                media_file,
                size_type=size_type,
                width=result.width,
                height=result.height,
                file_path=relative_path,
                file_size=result.file_size,
            )
            if size_type == PRIMARY_THUMBNAIL_SIZE:
                primary = relative_path

        return primary

    def _remove_files(self, paths: list[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove {path}: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    def stats(self, db: Session) -> dict[str, int]:
        """Counts and sizes over stored media and thumbnails."""
        return InboxRepository(db).media_stats()

    # =========================================================================
    # Maintenance
    # =========================================================================

    def cleanup_older_than(self, db: Session, days: int) -> int:
        """
        Delete media files (and thumbnails) created more than `days` ago.

        Messages keep their rows; their media reference is cleared.

        Returns:
            Number of media files deleted
        """
        repo = InboxRepository(db)
        deleted = 0
        for media_file in repo.list_media_files_older_than(days):
            paths = [media_file.file_path] + [t.file_path for t in media_file.thumbnails]
            self._remove_files([self.media_root / p for p in paths])
            repo.delete_media_file(media_file)
            deleted += 1
        db.commit()

        logger.info(f"Cleaned up {deleted} media files", extra={"days": days})
        return deleted

    def verify_files(self, db: Session) -> list[int]:
        """
        Mark rows whose primary file is missing on disk as `failed`.

        Returns:
            IDs of the media files marked failed
        """
        repo = InboxRepository(db)
        missing: list[int] = []
        for media_file in repo.list_media_files():
            if media_file.status == MediaFileStatus.FAILED.value:
                continue
            if not (self.media_root / media_file.file_path).is_file():
                media_file.status = MediaFileStatus.FAILED.value
                missing.append(media_file.id)
        db.commit()

        if missing:
            logger.warning(
                f"{len(missing)} media files missing on disk",
                extra={"media_file_ids": missing},
            )
        return missing
