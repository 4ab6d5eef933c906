"""
Media Processing

Metadata extraction and thumbnail rendering. Images go through Pillow;
videos through the `ffprobe` / `ffmpeg` binaries.
"""

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps

from wa_inbox.errors import ThumbnailGenerationError

logger = logging.getLogger(__name__)

THUMBNAIL_SIZES: dict[str, tuple[int, int]] = {
    "small": (150, 150),
    "medium": (320, 240),
    "large": (640, 480),
}
THUMBNAIL_QUALITY = 80
PRIMARY_THUMBNAIL_SIZE = "medium"

FFMPEG_TIMEOUT = 60


def base_mime_type(mime_type: str | None) -> str:
    """`audio/ogg; codecs=opus` -> `audio/ogg`."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def is_image(mime_type: str | None) -> bool:
    return base_mime_type(mime_type).startswith("image/")


def is_video(mime_type: str | None) -> bool:
    return base_mime_type(mime_type).startswith("video/")


@dataclass
class MediaMetadata:
    width: int | None = None
    height: int | None = None
    duration: int | None = None


@dataclass
class ThumbnailResult:
    width: int
    height: int
    file_size: int


class MediaProcessor:
    """Reads dimensions/duration and renders JPEG thumbnails."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        quality: int = THUMBNAIL_QUALITY,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.quality = quality

    def extract_metadata(self, path: Path, mime_type: str) -> MediaMetadata:
        """Best effort: unreadable files yield empty metadata."""
        if is_image(mime_type):
            return self._image_metadata(path)
        if is_video(mime_type):
            return self._video_metadata(path)
        return MediaMetadata()

    def _image_metadata(self, path: Path) -> MediaMetadata:
        try:
            with Image.open(path) as im:
                width, height = im.size
        except (OSError, ValueError) as e:
            logger.warning(f"Error reading image metadata: {e}", extra={"path": str(path)})
            return MediaMetadata()
        return MediaMetadata(width=width, height=height)

    def _video_metadata(self, path: Path) -> MediaMetadata:
        cmd = [
            self.ffprobe_bin, "-v", "error",
            "-print_format", "json",
            "-show_format", "-show_streams",
            str(path),
        ]
        try:
            proc = subprocess.run(cmd, capture_output=True, timeout=FFMPEG_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"ffprobe unavailable or timed out: {e}", extra={"path": str(path)})
            return MediaMetadata()

        if proc.returncode != 0:
            logger.warning(
                "ffprobe failed",
                extra={"path": str(path), "stderr": proc.stderr.decode(errors="ignore")[:500]},
            )
            return MediaMetadata()

        try:
            info = json.loads(proc.stdout or b"{}")
        except ValueError:
            return MediaMetadata()

        video_stream = next(
            (s for s in info.get("streams", []) if s.get("codec_type") == "video"),
            {},
        )
        try:
            duration = round(float(info.get("format", {}).get("duration") or 0))
        except (TypeError, ValueError):
            duration = None

        return MediaMetadata(
            width=video_stream.get("width"),
            height=video_stream.get("height"),
            duration=duration,
        )

    def generate_thumbnail(
        self,
        source: Path,
        dest: Path,
        mime_type: str,
        size: tuple[int, int],
    ) -> ThumbnailResult:
        """
        Render one JPEG thumbnail covering `size` (center crop).

        Raises:
            ThumbnailGenerationError: on any failure
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        if is_image(mime_type):
            self._image_thumbnail(source, dest, size)
        elif is_video(mime_type):
            self._video_thumbnail(source, dest, size)
        else:
            raise ThumbnailGenerationError(f"No thumbnails for {mime_type}")

        try:
            file_size = dest.stat().st_size
        except OSError as e:
            raise ThumbnailGenerationError(f"Thumbnail not written: {dest}") from e

        return ThumbnailResult(width=size[0], height=size[1], file_size=file_size)

    def _image_thumbnail(self, source: Path, dest: Path, size: tuple[int, int]) -> None:
        try:
            with Image.open(source) as im:
                im = ImageOps.exif_transpose(im)
                thumb = ImageOps.fit(im.convert("RGB"), size, centering=(0.5, 0.5))
                thumb.save(dest, "JPEG", quality=self.quality)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise ThumbnailGenerationError(f"Image thumbnail failed: {e}") from e

    def _video_thumbnail(self, source: Path, dest: Path, size: tuple[int, int]) -> None:
        width, height = size
        scale = (
            f"scale={width}:{height}:force_original_aspect_ratio=increase,"
            f"crop={width}:{height}"
        )
        # Capture at 1s; clips shorter than that fall back to the first frame
        for timemark in ("1", "0"):
            cmd = [
                self.ffmpeg_bin, "-y", "-hide_banner", "-loglevel", "error",
                "-ss", timemark,
                "-i", str(source),
                "-frames:v", "1",
                "-vf", scale,
                "-q:v", "3",
                str(dest),
            ]
            try:
                proc = subprocess.run(cmd, capture_output=True, timeout=FFMPEG_TIMEOUT)
            except (OSError, subprocess.TimeoutExpired) as e:
                raise ThumbnailGenerationError(f"ffmpeg unavailable or timed out: {e}") from e
            if proc.returncode == 0 and dest.exists():
                return

        raise ThumbnailGenerationError(
            f"ffmpeg failed: {proc.stderr.decode(errors='ignore')[:500]}"
        )
