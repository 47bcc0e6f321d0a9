"""
Protocols (Interfaces) for Dependency Inversion.

Backends, row stores and credential providers are injected into the
orchestrator; tests replace them with fakes.
"""
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

ProgressCallback = Callable[[int, int], None]


@runtime_checkable
class ICredentialProvider(Protocol):
    """Supplies access tokens. Acquisition and refresh live elsewhere."""

    def is_authenticated(self) -> bool:
        ...

    def current_credentials(self) -> str:
        """Return the current bearer token."""
        ...


@runtime_checkable
class IBlobStore(Protocol):
    """Interface for the blob store (Google Drive)."""

    async def create(self, metadata: Dict[str, Any], path: Path) -> Dict[str, Any]:
        """Single-shot upload. Returns {id, name, size, mimeType, createdTime, ...}."""
        ...

    async def create_resumable(
        self,
        metadata: Dict[str, Any],
        path: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """Chunked resumable upload."""
        ...

    async def create_container(self, name: str, parent_id: Optional[str] = None) -> str:
        """Create a folder and return its id."""
        ...


@runtime_checkable
class IMediaLibrary(Protocol):
    """Interface for the media library (Google Photos)."""

    async def upload_bytes(self, path: Path, mime_type: str) -> str:
        """Upload raw bytes, returning an upload token."""
        ...

    async def create_item(self, token: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Create a media item from an upload token. Returns {id, filename, ...}."""
        ...

    async def create_container(self, name: str) -> str:
        """Create an album and return its id."""
        ...

    async def add_items_to_container(self, container_id: str, item_ids: List[str]) -> List[str]:
        """Add at most 50 items to an album."""
        ...


@runtime_checkable
class IRowStore(Protocol):
    """Key-value view over a tabular store. Rows are column -> cell text."""

    async def get_all(self) -> Dict[str, Dict[str, str]]:
        ...

    async def get_by_key(self, key: str) -> Optional[Dict[str, str]]:
        ...

    async def upsert_by_key(self, key: str, values: Dict[str, str]) -> None:
        """Write only the given cells of the row for key (append if absent)."""
        ...

    async def append_rows(self, rows: List[Dict[str, str]]) -> None:
        ...

    async def clear_all(self) -> None:
        """Remove every data row, keeping the header."""
        ...
