"""
State reconciliation against the row store.

The row store can be edited by people while a run is in progress, so every
read is treated as possibly stale and the orchestrator only ever writes the
columns it owns (plus descriptor columns on full snapshots).

Flow:
1. load(): merge persisted rows into the in-memory tracked files
2. write_snapshot(): re-read, merge, rewrite all rows (analysis and shutdown)
3. checkpoint_file(): upsert owned columns of one row after each transfer
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ..errors import StoreError
from ..models import ChannelState, ProgressRecord, TrackedFile, UploadStatus
from ..protocols import IRowStore

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateReconciler:
    """Merges and persists per-file state for one channel."""

    def __init__(self, row_store: IRowStore):
        self._store = row_store

    @staticmethod
    def merge_file(tracked: TrackedFile, row: Optional[Dict[str, str]]) -> bool:
        """
        Merge one persisted row into a tracked file.

        Args:
            tracked: Local state, updated in place
            row: Persisted row, or None if the store has no row for this id

        Returns:
            True if the local state changed
        """
        if not row:
            return False
        persisted = TrackedFile.parse_owned(row)
        before = (
            tracked.status, tracked.upload_error, tracked.attempts, tracked.content_hash,
            tracked.remote_link, tracked.upload_date, tracked.deleted_from_source,
        )

        tracked.content_hash = tracked.content_hash or persisted["content_hash"]
        tracked.remote_link = tracked.remote_link or persisted["remote_link"]
        tracked.upload_date = tracked.upload_date or persisted["upload_date"]
        tracked.deleted_from_source = tracked.deleted_from_source or persisted["deleted_from_source"]

        persisted_status = persisted["status"]
        if tracked.is_fresh and persisted_status is not None:
            tracked.status = persisted_status
            tracked.upload_error = persisted["upload_error"]
        elif persisted_status == UploadStatus.UPLOADED and tracked.status in (
            UploadStatus.PENDING, UploadStatus.FAILED
        ):
            # A persisted success is never downgraded
            tracked.status = UploadStatus.UPLOADED
            tracked.upload_error = None
        tracked.attempts = max(tracked.attempts, persisted["attempts"])

        after = (
            tracked.status, tracked.upload_error, tracked.attempts, tracked.content_hash,
            tracked.remote_link, tracked.upload_date, tracked.deleted_from_source,
        )
        return before != after

    async def _read_rows(self) -> Dict[str, Dict[str, str]]:
        try:
            return await self._store.get_all()
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Could not read row store: {e}") from e

    async def load(self, channel: ChannelState) -> int:
        """Merge persisted state into the channel. Returns number of files changed."""
        rows = await self._read_rows()
        changed = sum(1 for tracked in channel if self.merge_file(tracked, rows.get(tracked.id)))
        logger.info(
            "Loaded %d persisted rows for channel %s (%d files updated)",
            len(rows), channel.channel_id, changed,
        )
        return changed

    async def write_snapshot(self, channel: ChannelState) -> None:
        """
        Replace the store contents with the channel's full state.

        Externally-owned columns of existing rows and rows for ids this
        channel does not track are carried over unchanged.

        Raises:
            StoreError: if reading or writing the store fails
        """
        rows = await self._read_rows()
        tracked_ids = set()
        snapshot: List[Dict[str, str]] = []
        for tracked in channel:
            existing = rows.get(tracked.id)
            self.merge_file(tracked, existing)
            row = dict(existing or {})
            row.update(tracked.to_row())
            snapshot.append(row)
            tracked_ids.add(tracked.id)

        snapshot.extend(dict(row) for key, row in rows.items() if key not in tracked_ids)

        try:
            await self._store.clear_all()
            await self._store.append_rows(snapshot)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Could not write snapshot: {e}") from e
        logger.info("Snapshot written for channel %s (%d rows)", channel.channel_id, len(snapshot))

    async def checkpoint_file(self, tracked: TrackedFile) -> bool:
        """
        Upsert the owned columns of one file's row.

        Retried once; a second failure is logged and reported, not raised,
        because the transfer itself already happened.
        """
        values = tracked.owned_values()
        for attempt in (1, 2):
            try:
                await self._store.upsert_by_key(tracked.id, values)
                return True
            except StoreError as e:
                if attempt == 1:
                    logger.debug("Checkpoint for '%s' failed, retrying: %s", tracked.name, e)
                    continue
                logger.warning("Checkpoint for '%s' failed twice: %s", tracked.name, e)
        return False


class ProgressCheckpointer:
    """
    Writes a channel's ProgressRecord to the progress store, throttled.

    The first write, forced writes (last file, terminal status) and writes
    at least `interval` seconds apart go through; the rest are dropped.
    """

    def __init__(
        self,
        progress_store: Optional[IRowStore],
        interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = progress_store
        self._interval = interval
        self._clock = clock
        self._last_write: Optional[float] = None

    async def update(self, record: ProgressRecord, force: bool = False) -> bool:
        """Returns True if the record was written."""
        if self._store is None:
            return False
        now = self._clock()
        if not force and self._last_write is not None and now - self._last_write < self._interval:
            return False

        record.last_updated = utc_now_iso()
        try:
            await self._store.upsert_by_key(record.channel_id, record.to_row())
        except StoreError as e:
            logger.warning(f"Progress checkpoint failed for {record.channel_id}: {e}")
            return False
        self._last_write = now
        return True
