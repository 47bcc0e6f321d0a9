"""
Transfer Router - Single Responsibility: send one file to the right backend.

Photos and videos go to the media library (two-phase upload, then album
membership); everything else goes to the blob store (single-shot or resumable).
"""
import logging
import re
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..config import UploadConfig
from ..models import ChannelState, ContainerRef, Destination, TrackedFile, TransferOutcome
from ..protocols import IBlobStore, IMediaLibrary, ProgressCallback

logger = logging.getLogger(__name__)

ContainerCallback = Callable[[Destination, ContainerRef], None]

MAX_ALBUM_TITLE = 500
_TAG_RE = re.compile(r"<[^>]*>")

DRIVE_FILE_LINK = "https://drive.google.com/file/d/{id}/view"


class TransferMode(Enum):
    MEDIA_TWO_PHASE = "media_two_phase"
    RESUMABLE = "resumable"
    SINGLE_SHOT = "single_shot"


def album_title(name: str) -> str:
    """Sanitize and validate a container title."""
    title = _TAG_RE.sub("", name or "").replace("<", "").replace(">", "").strip()
    if not title:
        raise ValueError("Album name cannot be empty")
    if len(title) > MAX_ALBUM_TITLE:
        raise ValueError("Album name too long")
    return title


def chunked(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class TransferRouter:
    """
    Chooses destination and mode for a file and performs the transfer.

    The router never mutates channel state: a container it had to create is
    handed to on_container_created as soon as it exists (so a later failure
    in the same transfer cannot lose it) and is also returned in the outcome.

    A media item whose album membership failed is remembered, so retrying
    the same file only repeats the membership step and never creates a
    second item.
    """

    def __init__(
        self,
        media_library: IMediaLibrary,
        blob_store: IBlobStore,
        config: Optional[UploadConfig] = None,
    ):
        self._media = media_library
        self._blobs = blob_store
        self._config = config or UploadConfig()
        # (channel_id, file_id) -> created media item not yet in its album
        self._unfiled: Dict[Tuple[str, str], dict] = {}

    @staticmethod
    def destination_for(tracked: TrackedFile) -> Destination:
        if tracked.descriptor.is_visual:
            return Destination.MEDIA_LIBRARY
        return Destination.BLOB_STORE

    def mode_for(self, tracked: TrackedFile) -> TransferMode:
        if self.destination_for(tracked) is Destination.MEDIA_LIBRARY:
            return TransferMode.MEDIA_TWO_PHASE
        if tracked.descriptor.size >= self._config.resumable_threshold:
            return TransferMode.RESUMABLE
        return TransferMode.SINGLE_SHOT

    async def transfer(
        self,
        tracked: TrackedFile,
        channel: ChannelState,
        progress_callback: Optional[ProgressCallback] = None,
        on_container_created: Optional[ContainerCallback] = None,
    ) -> TransferOutcome:
        """
        Upload one file.

        Args:
            tracked: File to upload
            channel: Channel the file belongs to (read for cached containers)
            progress_callback: Optional (bytes_uploaded, bytes_total) callback
            on_container_created: Called right after a new album/folder exists

        Returns:
            TransferOutcome; created_container is set only if a new album or
            folder was created during this call.

        Raises:
            Whatever the backend raises; callers normalize and classify it.
        """
        destination = self.destination_for(tracked)
        container, created = await self._ensure_container(destination, channel, on_container_created)
        if destination is Destination.MEDIA_LIBRARY:
            remote_id, link = await self._to_media_library(tracked, channel, container, progress_callback)
        else:
            remote_id, link = await self._to_blob_store(tracked, container, progress_callback)
        return TransferOutcome(
            remote_id=remote_id,
            remote_link=link,
            destination=destination,
            created_container=created,
        )

    async def add_to_album(self, album_id: str, item_ids: List[str]) -> List[str]:
        """Add items to an album in batches of at most album_batch_size."""
        added: List[str] = []
        for batch in chunked(item_ids, self._config.album_batch_size):
            added.extend(await self._media.add_items_to_container(album_id, batch))
        return added

    async def _ensure_container(
        self,
        destination: Destination,
        channel: ChannelState,
        on_created: Optional[ContainerCallback],
    ) -> Tuple[ContainerRef, Optional[ContainerRef]]:
        cached = channel.container_for(destination)
        if cached is not None:
            return cached, None

        title = album_title(channel.name)
        if destination is Destination.MEDIA_LIBRARY:
            logger.info("Creating album '%s' for channel %s", title, channel.channel_id)
            container_id = await self._media.create_container(title)
        else:
            logger.info("Creating folder '%s' for channel %s", title, channel.channel_id)
            container_id = await self._blobs.create_container(title, self._config.drive_parent_folder_id)

        created = ContainerRef(id=container_id, name=title)
        if on_created:
            on_created(destination, created)
        return created, created

    async def _to_media_library(
        self,
        tracked: TrackedFile,
        channel: ChannelState,
        album: ContainerRef,
        progress_callback: Optional[ProgressCallback],
    ) -> Tuple[str, Optional[str]]:
        descriptor = tracked.descriptor
        if progress_callback:
            progress_callback(0, descriptor.size)

        key = (channel.channel_id, tracked.id)
        item = self._unfiled.get(key)
        if item is None:
            # Phase 1: bytes -> upload token
            token = await self._media.upload_bytes(descriptor.path, descriptor.mime_type)
            # Phase 2: token -> media item
            item = await self._media.create_item(token, {
                "filename": descriptor.name,
                "description": f"{channel.name} - {descriptor.timestamp.isoformat()}",
            })
            self._unfiled[key] = item
        else:
            logger.info("'%s' already exists as media item %s, retrying album add", descriptor.name, item["id"])

        await self.add_to_album(album.id, [item["id"]])
        del self._unfiled[key]

        if progress_callback:
            progress_callback(descriptor.size, descriptor.size)

        logger.debug("'%s' -> media item %s (album %s)", descriptor.name, item["id"], album.id)
        return item["id"], item.get("productUrl") or item.get("baseUrl")

    async def _to_blob_store(
        self,
        tracked: TrackedFile,
        folder: ContainerRef,
        progress_callback: Optional[ProgressCallback],
    ) -> Tuple[str, Optional[str]]:
        descriptor = tracked.descriptor
        metadata = {
            "name": descriptor.name,
            "mimeType": descriptor.mime_type or "application/octet-stream",
            "parents": [folder.id],
        }
        if self.mode_for(tracked) is TransferMode.RESUMABLE:
            logger.debug("'%s' (%d bytes) -> resumable upload", descriptor.name, descriptor.size)
            result = await self._blobs.create_resumable(metadata, descriptor.path, progress_callback)
        else:
            if progress_callback:
                progress_callback(0, descriptor.size)
            result = await self._blobs.create(metadata, descriptor.path)
            if progress_callback:
                progress_callback(descriptor.size, descriptor.size)

        file_id = result["id"]
        return file_id, result.get("webViewLink") or DRIVE_FILE_LINK.format(id=file_id)
