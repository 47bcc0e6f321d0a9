"""
Models for wauploader.

Descriptors coming from the scanner are immutable; tracking state is mutable
and owned by the sequencer of a single channel.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, List, Iterator


class UploadStatus(Enum):
    """Per-file transfer status."""
    PENDING = "pending"
    UPLOADED = "uploaded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["UploadStatus"]:
        """Parse a status cell, returning None for empty or unknown values."""
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class MediaType(Enum):
    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"


class Destination(Enum):
    """Remote service a file is routed to."""
    MEDIA_LIBRARY = "media_library"  # Google Photos
    BLOB_STORE = "blob_store"        # Google Drive


@dataclass(frozen=True)
class FileDescriptor:
    """Immutable description of a local file, supplied by the scanner."""
    id: str
    name: str
    path: Path
    size: int
    mime_type: str
    media_type: MediaType
    timestamp: datetime

    @property
    def is_visual(self) -> bool:
        """True for photos and videos (routed to the media library)."""
        mime = (self.mime_type or "").lower()
        if mime.startswith("image/") or mime.startswith("video/"):
            return True
        return self.media_type in (MediaType.PHOTO, MediaType.VIDEO)


# Columns written by the orchestrator. Anything else in the store belongs
# to whoever edits the sheet.
DESCRIPTOR_COLUMNS = ("id", "name", "path", "size", "mime_type", "media_type", "timestamp")
OWNED_COLUMNS = (
    "upload_status",
    "upload_date",
    "upload_error",
    "upload_attempts",
    "remote_link",
    "content_hash",
    "deleted_from_source",
)
KEY_COLUMN = "id"


def _parse_bool(value) -> bool:
    return str(value).strip().lower() in {"true", "1", "yes", "sim"}


def _parse_int(value) -> int:
    try:
        return int(str(value).strip() or 0)
    except ValueError:
        return 0


@dataclass
class TrackedFile:
    """A descriptor plus its transfer state."""
    descriptor: FileDescriptor
    status: UploadStatus = UploadStatus.PENDING
    upload_date: Optional[str] = None
    upload_error: Optional[str] = None
    attempts: int = 0
    remote_link: Optional[str] = None
    content_hash: Optional[str] = None
    deleted_from_source: bool = False

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def path(self) -> Path:
        return self.descriptor.path

    @property
    def is_fresh(self) -> bool:
        """True if nothing has happened to this file in the current process."""
        return self.status == UploadStatus.PENDING and self.attempts == 0

    def owned_values(self) -> Dict[str, str]:
        """Orchestrator-owned columns as store cells."""
        return {
            "upload_status": self.status.value,
            "upload_date": self.upload_date or "",
            "upload_error": self.upload_error or "",
            "upload_attempts": str(self.attempts),
            "remote_link": self.remote_link or "",
            "content_hash": self.content_hash or "",
            "deleted_from_source": "TRUE" if self.deleted_from_source else "FALSE",
        }

    def to_row(self) -> Dict[str, str]:
        """Descriptor and owned columns as store cells."""
        d = self.descriptor
        row = {
            "id": d.id,
            "name": d.name,
            "path": str(d.path),
            "size": str(d.size),
            "mime_type": d.mime_type,
            "media_type": d.media_type.value,
            "timestamp": d.timestamp.isoformat(),
        }
        row.update(self.owned_values())
        return row

    @staticmethod
    def parse_owned(row: Dict[str, str]) -> Dict[str, object]:
        """Decode owned columns from a store row. Missing cells become None."""
        return {
            "status": UploadStatus.parse(row.get("upload_status")),
            "upload_date": row.get("upload_date") or None,
            "upload_error": row.get("upload_error") or None,
            "attempts": _parse_int(row.get("upload_attempts", 0)),
            "remote_link": row.get("remote_link") or None,
            "content_hash": row.get("content_hash") or None,
            "deleted_from_source": _parse_bool(row.get("deleted_from_source", "")),
        }


@dataclass(frozen=True)
class ContainerRef:
    """A remote album or folder."""
    id: str
    name: str


@dataclass
class ChannelState:
    """One chat: its cached containers and its files in chronological order."""
    channel_id: str
    name: str
    files: List[TrackedFile] = field(default_factory=list)
    containers: Dict[Destination, ContainerRef] = field(default_factory=dict)

    def __post_init__(self):
        seen = set()
        for tracked in self.files:
            if tracked.id in seen:
                raise ValueError(f"Duplicate file id {tracked.id!r} in channel {self.channel_id!r}")
            seen.add(tracked.id)

    @classmethod
    def from_descriptors(
        cls,
        channel_id: str,
        name: str,
        descriptors: List[FileDescriptor],
        album: Optional[ContainerRef] = None,
        folder: Optional[ContainerRef] = None,
    ) -> "ChannelState":
        containers = {}
        if album:
            containers[Destination.MEDIA_LIBRARY] = album
        if folder:
            containers[Destination.BLOB_STORE] = folder
        return cls(
            channel_id=channel_id,
            name=name,
            files=[TrackedFile(descriptor=d) for d in descriptors],
            containers=containers,
        )

    def container_for(self, destination: Destination) -> Optional[ContainerRef]:
        return self.containers.get(destination)

    def cache_container(self, destination: Destination, container: ContainerRef) -> None:
        if destination in self.containers:
            raise RuntimeError(
                f"Container for {destination.value} already cached for channel {self.channel_id}"
            )
        self.containers[destination] = container

    def by_id(self) -> Dict[str, TrackedFile]:
        return {f.id: f for f in self.files}

    def count(self, status: UploadStatus) -> int:
        return sum(1 for f in self.files if f.status == status)

    def __iter__(self) -> Iterator[TrackedFile]:
        return iter(self.files)


@dataclass(frozen=True)
class TransferOutcome:
    """Result of a successful transfer."""
    remote_id: str
    remote_link: Optional[str]
    destination: Destination
    created_container: Optional[ContainerRef] = None


@dataclass
class ProgressRecord:
    """Per-channel progress row."""
    channel_id: str
    channel_name: str
    total_files: int
    processed_files: int = 0
    uploaded: int = 0
    failed: int = 0
    skipped: int = 0
    last_file: str = ""
    status: str = "active"  # active, completed, interrupted, error
    last_updated: str = ""
    error_message: str = ""

    def to_row(self) -> Dict[str, str]:
        return {
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "total_files": str(self.total_files),
            "processed_files": str(self.processed_files),
            "uploaded": str(self.uploaded),
            "failed": str(self.failed),
            "skipped": str(self.skipped),
            "last_file": self.last_file,
            "status": self.status,
            "last_updated": self.last_updated,
            "error_message": self.error_message,
        }
