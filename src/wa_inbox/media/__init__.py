"""
Media Pipeline

Download from the Graph API, deduplicated storage, thumbnails.
"""

from wa_inbox.media.fetcher import FetchedMedia, MediaFetcher
from wa_inbox.media.processing import MediaProcessor
from wa_inbox.media.store import MediaStore

__all__ = ["FetchedMedia", "MediaFetcher", "MediaProcessor", "MediaStore"]
