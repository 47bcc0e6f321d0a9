"""
Photos Client - media library backed by the Google Photos Library REST API.

Implements IMediaLibrary: two-phase upload (bytes -> upload token -> media
item), album creation and batched album membership.
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List

from ..config import MAX_ALBUM_BATCH
from ..errors import TransferError
from .api_client import GoogleAPIClient

logger = logging.getLogger(__name__)

PHOTOS_API = "https://photoslibrary.googleapis.com/v1"
PHOTOS_UPLOAD_URL = f"{PHOTOS_API}/uploads"
PHOTOS_BATCH_CREATE_URL = f"{PHOTOS_API}/mediaItems:batchCreate"
PHOTOS_ALBUMS_URL = f"{PHOTOS_API}/albums"

# google.rpc.Code -> HTTP status, for per-item results of batchCreate
GRPC_TO_HTTP = {
    1: 499,   # CANCELLED
    2: 500,   # UNKNOWN
    3: 400,   # INVALID_ARGUMENT
    4: 504,   # DEADLINE_EXCEEDED
    5: 404,   # NOT_FOUND
    7: 403,   # PERMISSION_DENIED
    8: 429,   # RESOURCE_EXHAUSTED
    9: 400,   # FAILED_PRECONDITION
    13: 500,  # INTERNAL
    14: 503,  # UNAVAILABLE
    16: 401,  # UNAUTHENTICATED
}


class PhotosClient:
    """Google Photos media library."""

    def __init__(self, api: GoogleAPIClient):
        self._api = api

    async def upload_bytes(self, path: Path, mime_type: str) -> str:
        """Phase 1: upload raw bytes and return the upload token."""
        content = await asyncio.to_thread(Path(path).read_bytes)
        response = await self._api.post(
            PHOTOS_UPLOAD_URL,
            headers={
                "Content-Type": "application/octet-stream",
                "X-Goog-Upload-Content-Type": mime_type or "application/octet-stream",
                "X-Goog-Upload-Protocol": "raw",
            },
            content=content,
        )
        token = response.text.strip()
        if not token:
            raise TransferError("Empty upload token", code=response.status_code)
        return token

    async def create_item(self, token: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Phase 2: create a media item from an upload token."""
        response = await self._api.post(PHOTOS_BATCH_CREATE_URL, json={
            "newMediaItems": [{
                "description": metadata.get("description", ""),
                "simpleMediaItem": {
                    "uploadToken": token,
                    "fileName": metadata.get("filename"),
                },
            }]
        })
        results = response.json().get("newMediaItemResults") or []
        result = results[0] if results else {}
        status = result.get("status") or {}
        item = result.get("mediaItem")
        if not item or (status.get("message") not in (None, "Success", "OK")):
            grpc_code = status.get("code")
            raise TransferError(
                status.get("message") or f"Code: {grpc_code or 'Unknown'}",
                code=GRPC_TO_HTTP.get(grpc_code),
            )
        return item

    async def create_container(self, name: str) -> str:
        response = await self._api.post(PHOTOS_ALBUMS_URL, json={"album": {"title": name}})
        album_id = response.json()["id"]
        logger.info("Created album '%s' (%s)", name, album_id)
        return album_id

    async def add_items_to_container(self, container_id: str, item_ids: List[str]) -> List[str]:
        if not item_ids:
            raise ValueError("No media items provided")
        if len(item_ids) > MAX_ALBUM_BATCH:
            raise ValueError(f"At most {MAX_ALBUM_BATCH} items per batch, got {len(item_ids)}")
        await self._api.post(
            f"{PHOTOS_ALBUMS_URL}/{container_id}:batchAddMediaItems",
            json={"mediaItemIds": item_ids},
        )
        return list(item_ids)
