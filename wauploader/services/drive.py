"""
Drive Client - blob store backed by the Google Drive v3 REST API.

Implements IBlobStore: folder creation, multipart upload for small files
and chunked resumable upload sessions for large ones.
"""
import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import UploadConfig
from ..errors import TransferError
from ..protocols import ProgressCallback
from .api_client import GoogleAPIClient

logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id,name,size,mimeType,createdTime,webViewLink"

RESUME_INCOMPLETE = 308


def _read_chunk(path: Path, offset: int, size: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read(size)


def _next_offset(range_header: Optional[str]) -> int:
    """Parse 'bytes=0-1048575' into the next byte to send."""
    if not range_header or "-" not in range_header:
        return 0
    return int(range_header.rsplit("-", 1)[1]) + 1


class DriveClient:
    """Google Drive blob store."""

    def __init__(self, api: GoogleAPIClient, config: Optional[UploadConfig] = None):
        self._api = api
        self._config = config or UploadConfig()

    async def create_container(self, name: str, parent_id: Optional[str] = None) -> str:
        body: Dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]
        response = await self._api.post(DRIVE_FILES_URL, json=body, params={"fields": "id"})
        folder_id = response.json()["id"]
        logger.info("Created Drive folder '%s' (%s)", name, folder_id)
        return folder_id

    async def create(self, metadata: Dict[str, Any], path: Path) -> Dict[str, Any]:
        """Single-shot multipart upload."""
        content = await asyncio.to_thread(Path(path).read_bytes)
        boundary = f"wauploader-{uuid.uuid4().hex}"
        mime_type = metadata.get("mimeType") or "application/octet-stream"
        body = b"".join([
            f"--{boundary}\r\n".encode(),
            b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
            json.dumps(metadata).encode("utf-8"),
            f"\r\n--{boundary}\r\n".encode(),
            f"Content-Type: {mime_type}\r\n\r\n".encode(),
            content,
            f"\r\n--{boundary}--\r\n".encode(),
        ])
        response = await self._api.post(
            DRIVE_UPLOAD_URL,
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            content=body,
        )
        return response.json()

    async def create_resumable(
        self,
        metadata: Dict[str, Any],
        path: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """
        Resumable upload session.

        Sends the file in chunks of resumable_chunk_size; the server's Range
        header decides where the next chunk starts.
        """
        path = Path(path)
        total = path.stat().st_size
        mime_type = metadata.get("mimeType") or "application/octet-stream"

        init = await self._api.post(
            DRIVE_UPLOAD_URL,
            params={"uploadType": "resumable", "fields": FILE_FIELDS},
            headers={
                "X-Upload-Content-Type": mime_type,
                "X-Upload-Content-Length": str(total),
            },
            json=metadata,
        )
        session_url = init.headers.get("Location")
        if not session_url:
            raise TransferError("Resumable session did not return a Location header", code=init.status_code)

        chunk_size = self._config.resumable_chunk_size
        offset = 0
        if progress_callback:
            progress_callback(0, total)

        while True:
            chunk = await asyncio.to_thread(_read_chunk, path, offset, chunk_size)
            end = offset + len(chunk) - 1
            content_range = f"bytes {offset}-{end}/{total}" if chunk else f"bytes */{total}"
            response = await self._api.put(
                session_url,
                headers={"Content-Range": content_range},
                content=chunk,
                expected=(RESUME_INCOMPLETE,),
            )
            if response.status_code != RESUME_INCOMPLETE:
                if progress_callback:
                    progress_callback(total, total)
                return response.json()

            offset = _next_offset(response.headers.get("Range"))
            if progress_callback:
                progress_callback(offset, total)
            if not chunk:
                raise TransferError(
                    f"Resumable upload stalled at {offset}/{total} bytes", code=RESUME_INCOMPLETE
                )
