"""Shared fixtures: fake backends, recording sleep and descriptor factory."""
import itertools
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from wauploader.models import FileDescriptor, MediaType

MB = 1024 * 1024


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns immediately."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def make_descriptor():
    """Factory for descriptors; files live nowhere unless a path is given."""
    base = datetime(2024, 1, 1, 12, 0, 0)
    counter = itertools.count()

    def _make(
        name: str,
        size: int = 1024,
        mime_type: str = "image/jpeg",
        media_type: MediaType = MediaType.PHOTO,
        path: Path = None,
    ) -> FileDescriptor:
        return FileDescriptor(
            id=name,
            name=name,
            path=path or Path("/nonexistent/media") / name,
            size=size,
            mime_type=mime_type,
            media_type=media_type,
            timestamp=base + timedelta(minutes=next(counter)),
        )

    return _make


@pytest.fixture
def media_library():
    """Google Photos stand-in."""
    items = itertools.count(1)
    media = Mock()
    media.upload_bytes = AsyncMock(return_value="upload-token")
    media.create_item = AsyncMock(
        side_effect=lambda token, metadata: {
            "id": f"item-{next(items)}",
            "productUrl": f"https://photos.google.com/lr/photo/{metadata['filename']}",
        }
    )
    media.create_container = AsyncMock(return_value="album-1")
    media.add_items_to_container = AsyncMock(side_effect=lambda album_id, ids: list(ids))
    return media


@pytest.fixture
def blob_store():
    """Google Drive stand-in."""
    files = itertools.count(1)
    blobs = Mock()
    blobs.create = AsyncMock(side_effect=lambda metadata, path: {"id": f"drive-{next(files)}"})
    blobs.create_resumable = AsyncMock(
        side_effect=lambda metadata, path, progress_callback=None: {
            "id": f"drive-{next(files)}",
            "webViewLink": "https://drive.google.com/file/d/big/view",
        }
    )
    blobs.create_container = AsyncMock(return_value="folder-1")
    return blobs
