"""
Stored media endpoints: download, thumbnails, metadata, stats and upload.
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from wa_inbox.api.deps import get_media_store, get_session
from wa_inbox.contracts.payloads import MediaFileOut, MediaStats, ThumbnailOut
from wa_inbox.errors import MediaStorageError
from wa_inbox.media.store import MediaStore
from wa_inbox.persistence.models import MediaFile, ThumbnailSize
from wa_inbox.persistence.repo import InboxRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/media", tags=["media"])

# Cloud API limit for documents
MAX_UPLOAD_BYTES = 100 * 1024 * 1024


def _file_response(store: MediaStore, relative_path: str, media_type: str, filename: str | None = None):
    try:
        path = store.resolve_path(relative_path)
    except ValueError:
        raise HTTPException(status_code=404, detail="File not found")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, media_type=media_type, filename=filename)


def _media_out(repo: InboxRepository, media_file: MediaFile) -> MediaFileOut:
    item = MediaFileOut.model_validate(media_file)
    item.has_thumbnail = media_file.thumbnail_path is not None
    item.url = f"{router.prefix}/{media_file.id}"
    item.available_thumbnails = {
        thumbnail.size_type: ThumbnailOut(
            width=thumbnail.width,
            height=thumbnail.height,
            url=f"{router.prefix}/{media_file.id}/thumbnail?size={thumbnail.size_type}",
        )
        for thumbnail in repo.list_thumbnails(media_file.id)
    }
    return item


@router.get("/stats", response_model=MediaStats)
def media_stats(
    db: Session = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    return MediaStats(**store.stats(db))


@router.post("/upload", response_model=MediaFileOut, status_code=201)
def upload_media(
    file: UploadFile = File(...),
    db: Session = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    """Store an uploaded file through the deduplicating store."""
    contents = file.file.read(MAX_UPLOAD_BYTES + 1)
    if not contents:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(contents) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large (max 100MB)")

    try:
        media_file = store.store(
            db,
            contents,
            original_filename=file.filename,
            mime_type=file.content_type or "application/octet-stream",
        )
    except MediaStorageError as e:
        logger.error(f"Upload failed: {e}", extra={"upload_filename": file.filename})
        raise HTTPException(status_code=500, detail="Failed to store media")

    return _media_out(InboxRepository(db), media_file)


@router.get("/{media_file_id}/info", response_model=MediaFileOut)
def get_media_info(media_file_id: int, db: Session = Depends(get_session)):
    repo = InboxRepository(db)
    media_file = repo.get_media_file(media_file_id)
    if media_file is None:
        raise HTTPException(status_code=404, detail="Media not found")
    return _media_out(repo, media_file)


@router.get("/{media_file_id}")
def get_media(
    media_file_id: int,
    db: Session = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    media_file = InboxRepository(db).get_media_file(media_file_id)
    if media_file is None:
        raise HTTPException(status_code=404, detail="Media not found")
    return _file_response(store, media_file.file_path, media_file.mime_type)


@router.get("/{media_file_id}/thumbnail")
def get_thumbnail(
    media_file_id: int,
    size: ThumbnailSize = Query(ThumbnailSize.MEDIUM),
    db: Session = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    thumbnail = InboxRepository(db).get_thumbnail(media_file_id, size.value)
    if thumbnail is None:
        raise HTTPException(status_code=404, detail="Thumbnail not found")
    return _file_response(store, thumbnail.file_path, "image/jpeg")
