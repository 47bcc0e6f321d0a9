"""
Duplicate detection by content hash.

Flow:
1. Hash files that have no preserved hash and still exist locally
2. Group files by hash
3. Keep one file per group, mark the rest skipped
"""
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List

from blake3 import blake3

from ..models import TrackedFile, UploadStatus

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 65536  # 64KB chunks

Hasher = Callable[[Path], Awaitable[str]]


async def blake3_file(path: Path) -> str:
    """Calculate BLAKE3 hash of file asynchronously (non-blocking)."""
    def _hash_file():
        hasher = blake3()
        with open(path, "rb") as f:
            while True:
                chunk = f.read(HASH_CHUNK_SIZE)
                if not chunk:
                    break
                hasher.update(chunk)
        return hasher.hexdigest()

    # Run in thread pool to avoid blocking the event loop
    return await asyncio.to_thread(_hash_file)


def duplicate_error(keeper: TrackedFile) -> str:
    return f"Duplicate of {keeper.name}"


@dataclass
class DedupReport:
    """What a detection pass changed."""
    hashed: int = 0
    hash_errors: int = 0
    duplicates: List[str] = field(default_factory=list)  # ids newly marked skipped

    @property
    def changed(self) -> bool:
        return bool(self.hashed or self.duplicates)


class DuplicateDetector:
    """
    Hashes files and marks content duplicates as skipped.

    Running it again over already-hashed files changes nothing.
    """

    def __init__(self, hasher: Hasher = blake3_file):
        self._hasher = hasher

    async def detect(self, files: List[TrackedFile]) -> DedupReport:
        report = DedupReport()
        await self._hash_missing(files, report)

        groups: Dict[str, List[TrackedFile]] = {}
        for tracked in files:
            if tracked.content_hash:
                groups.setdefault(tracked.content_hash, []).append(tracked)

        for content_hash, members in groups.items():
            if len(members) < 2:
                continue
            keeper = self._pick_keeper(members)
            for tracked in members:
                if tracked is keeper:
                    continue
                if self._mark_duplicate(tracked, keeper):
                    report.duplicates.append(tracked.id)
                    logger.info("'%s' duplicates '%s' (%s...) - SKIP", tracked.name, keeper.name, content_hash[:16])

        logger.info(
            "Dedup complete - %d hashed, %d duplicates, %d hash errors",
            report.hashed, len(report.duplicates), report.hash_errors,
        )
        return report

    async def _hash_missing(self, files: List[TrackedFile], report: DedupReport) -> None:
        for tracked in files:
            if tracked.content_hash:
                continue
            if not tracked.path.is_file():
                logger.debug("'%s' not present locally - not hashed", tracked.name)
                continue
            try:
                tracked.content_hash = await self._hasher(tracked.path)
                report.hashed += 1
            except OSError as e:
                report.hash_errors += 1
                logger.warning("Hash failed for '%s': %s", tracked.path, e)

    @staticmethod
    def _pick_keeper(members: List[TrackedFile]) -> TrackedFile:
        # An already uploaded copy wins so a persisted success is never demoted
        for tracked in members:
            if tracked.status == UploadStatus.UPLOADED:
                return tracked
        return members[0]

    @staticmethod
    def _mark_duplicate(tracked: TrackedFile, keeper: TrackedFile) -> bool:
        error = duplicate_error(keeper)
        if tracked.status == UploadStatus.SKIPPED and tracked.upload_error == error:
            return False
        tracked.status = UploadStatus.SKIPPED
        tracked.upload_error = error
        return True
