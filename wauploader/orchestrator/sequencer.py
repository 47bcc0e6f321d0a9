"""
Upload Sequencer - drives one channel through analysis and transfer.

States: Idle -> Analyzing -> Transferring -> Completed | Interrupted

Analyzing merges persisted state, runs duplicate detection and writes a
full snapshot. Transferring sends eligible files in chronological order,
one at a time, flushing each file's row before moving on.
"""
import asyncio
import functools
import logging
import time
from typing import Awaitable, Callable, List, Optional

from ..config import UploadConfig
from ..errors import StoreError, TransferError, normalize_error
from ..models import ChannelState, ProgressRecord, TrackedFile, TransferOutcome, UploadStatus
from ..services.dedup import DuplicateDetector
from ..services.rate_limiter import AdaptiveRateLimiter
from ..services.reconciler import ProgressCheckpointer, StateReconciler, utc_now_iso
from ..services.retry import ErrorKind, RetryClassifier
from ..services.router import TransferRouter
from ..utils.events import EventEmitter, FileProgress
from .models import RunSummary, SequencerState
from .recovery import CrashRecoveryHandler

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class UploadSequencer:
    """
    Per-channel state machine.

    Events (subscribe with on()):
        phase(channel_id, SequencerState)
        file_start(TrackedFile)
        file_progress(TrackedFile, FileProgress)
        file_complete(TrackedFile, TransferOutcome)
        file_fail(TrackedFile, TransferError)
        quota_wait(TrackedFile, seconds)
        progress(ProgressRecord)
        finish(RunSummary)
    """

    def __init__(
        self,
        channel: ChannelState,
        router: TransferRouter,
        reconciler: StateReconciler,
        limiter: AdaptiveRateLimiter,
        config: Optional[UploadConfig] = None,
        classifier: Optional[RetryClassifier] = None,
        detector: Optional[DuplicateDetector] = None,
        recovery: Optional[CrashRecoveryHandler] = None,
        progress: Optional[ProgressCheckpointer] = None,
        events: Optional[EventEmitter] = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self._router = router
        self._reconciler = reconciler
        self._limiter = limiter
        self._config = config or UploadConfig()
        self._classifier = classifier or RetryClassifier(
            max_retries=self._config.max_retries,
            base_delay=self._config.retry_base_delay,
            max_delay=self._config.retry_max_delay,
        )
        self._detector = detector or DuplicateDetector()
        self._recovery = recovery
        self._progress = progress or ProgressCheckpointer(None)
        self._events = events or EventEmitter()
        self._sleep = sleep
        self._clock = clock
        self._state = SequencerState.IDLE
        self._record = ProgressRecord(
            channel_id=channel.channel_id,
            channel_name=channel.name,
            total_files=len(channel.files),
        )

    # Event subscription
    def on(self, event_name: str, callback: Callable):
        self._events.on(event_name, callback)

    @property
    def state(self) -> SequencerState:
        return self._state

    @property
    def record(self) -> ProgressRecord:
        return self._record

    def eligible(self) -> List[TrackedFile]:
        """Files still to transfer, in chronological order."""
        wanted = {UploadStatus.PENDING}
        if not self._config.skip_failed:
            wanted.add(UploadStatus.FAILED)
        return [f for f in self.channel if f.status in wanted]

    def _stop_requested(self) -> bool:
        return self._recovery is not None and self._recovery.shutting_down

    async def _set_state(self, state: SequencerState) -> None:
        self._state = state
        logger.debug("Channel %s -> %s", self.channel.channel_id, state.value)
        await self._events.emit("phase", self.channel.channel_id, state)

    async def run(self) -> RunSummary:
        """
        Run the channel to completion or interruption.

        Raises:
            StoreError: if the post-analysis snapshot cannot be written;
                nothing has been transferred at that point.
        """
        if self._state != SequencerState.IDLE:
            raise RuntimeError(f"Cannot run sequencer in state: {self._state}")
        started = self._clock()

        await self._set_state(SequencerState.ANALYZING)
        try:
            await self._analyze()
        except StoreError as e:
            self._refresh_record(status="error", error_message=str(e))
            await self._progress.update(self._record, force=True)
            logger.error(f"Channel {self.channel.channel_id} aborted before transfers: {e}")
            raise

        await self._set_state(SequencerState.TRANSFERRING)
        interrupted = await self._transfer_all()

        if interrupted:
            await self._flush_on_stop()
            await self._set_state(SequencerState.INTERRUPTED)
        else:
            if self._stop_requested():
                # Signal arrived during the last transfer
                await self._flush_on_stop()
            await self._set_state(SequencerState.COMPLETED)

        self._refresh_record(status=self._state.value)
        await self._progress.update(self._record, force=True)

        summary = self._summary(self._clock() - started)
        logger.info(
            "Channel %s %s: %d uploaded, %d failed, %d skipped, %d pending (%.1fs)",
            summary.channel_id, summary.state.value, summary.uploaded, summary.failed,
            summary.skipped, summary.pending, summary.elapsed,
        )
        await self._events.drain()
        await self._events.emit("finish", summary)
        return summary

    async def _analyze(self) -> None:
        await self._reconciler.load(self.channel)
        await self._detector.detect(self.channel.files)
        # Fail fast: nothing is transferred unless the store is writable
        await self._reconciler.write_snapshot(self.channel)

    async def _transfer_all(self) -> bool:
        """Returns True if the run was interrupted."""
        queue = self.eligible()
        logger.info(
            "Channel %s: %d of %d files eligible", self.channel.channel_id, len(queue), len(self.channel.files)
        )
        self._refresh_record(status="active")
        await self._progress.update(self._record, force=True)

        for index, tracked in enumerate(queue):
            if self._stop_requested():
                logger.info("Stopping before '%s' (%d left)", tracked.name, len(queue) - index)
                return True

            finished = await self._process(tracked)
            if not finished:
                return True

            await self._reconciler.checkpoint_file(tracked)
            self._refresh_record(status="active", last_file=tracked.name)
            await self._events.emit("progress", self._record)
            await self._progress.update(self._record, force=index in (0, len(queue) - 1))
        return False

    async def _process(self, tracked: TrackedFile) -> bool:
        """
        Transfer one file until it has a terminal outcome.

        Returns:
            False if the run must stop with the file left as it was
            (shutdown or quota wait limit during quota backoff).
        """
        retries = 0
        quota_waited = 0.0
        # Pacing applies once per file; retries already waited their backoff
        await self._limiter.before_transfer()
        while True:
            tracked.attempts += 1
            await self._events.emit("file_start", tracked)

            try:
                outcome = await self._router.transfer(
                    tracked,
                    self.channel,
                    progress_callback=self._progress_callback(tracked),
                    on_container_created=self.channel.cache_container,
                )
            except Exception as exc:
                error = normalize_error(exc)
                classified = self._classifier.classify_error(error)

                if classified.kind is ErrorKind.QUOTA:
                    logger.warning(f"Quota error on '{tracked.name}': {error.message}")
                    wait = await self._limiter.record_quota_error()
                    quota_waited += wait
                    await self._events.emit("quota_wait", tracked, wait)
                    limit = self._config.max_quota_wait
                    if limit is not None and quota_waited > limit:
                        logger.error(
                            "Quota wait for '%s' exceeded %.0fs - stopping channel %s",
                            tracked.name, limit, self.channel.channel_id,
                        )
                        return False
                    if self._stop_requested():
                        return False
                    continue

                if self._classifier.should_retry(classified.kind, retries):
                    delay = self._classifier.backoff_delay(retries, classified.retry_after)
                    retries += 1
                    logger.info(
                        "Transient error on '%s' (retry %d/%d in %.1fs): %s",
                        tracked.name, retries, self._classifier.max_retries, delay, error.message,
                    )
                    await self._sleep(delay)
                    continue

                self._mark_failed(tracked, error)
                await self._events.emit("file_fail", tracked, error)
                return True

            self._mark_uploaded(tracked, outcome)
            self._limiter.record_success()
            await self._events.emit("file_complete", tracked, outcome)
            return True

    def _progress_callback(self, tracked: TrackedFile):
        def _callback(uploaded: int, total: int):
            progress = FileProgress(tracked.id, tracked.name, uploaded, total)
            self._events.emit_nowait("file_progress", tracked, progress)
        return _callback

    @staticmethod
    def _mark_uploaded(tracked: TrackedFile, outcome: TransferOutcome) -> None:
        tracked.status = UploadStatus.UPLOADED
        tracked.upload_date = utc_now_iso()
        tracked.upload_error = None
        tracked.remote_link = outcome.remote_link
        logger.info("Uploaded '%s' -> %s", tracked.name, outcome.remote_link or outcome.remote_id)

    @staticmethod
    def _mark_failed(tracked: TrackedFile, error: TransferError) -> None:
        tracked.status = UploadStatus.FAILED
        tracked.upload_error = error.message
        logger.error(f"Failed '{tracked.name}' after {tracked.attempts} attempt(s): {error.message}")

    async def _flush_on_stop(self) -> None:
        flush = functools.partial(self._reconciler.write_snapshot, self.channel)
        if self._stop_requested():
            await self._recovery.final_flush(flush)
            return
        try:
            await flush()
        except StoreError as e:
            logger.error(f"Snapshot on stop failed for channel {self.channel.channel_id}: {e}")

    def _refresh_record(self, status: str, last_file: Optional[str] = None, error_message: str = "") -> None:
        record = self._record
        record.uploaded = self.channel.count(UploadStatus.UPLOADED)
        record.failed = self.channel.count(UploadStatus.FAILED)
        record.skipped = self.channel.count(UploadStatus.SKIPPED)
        record.processed_files = record.uploaded + record.failed + record.skipped
        record.status = status
        record.error_message = error_message
        if last_file is not None:
            record.last_file = last_file

    def _summary(self, elapsed: float) -> RunSummary:
        return RunSummary(
            channel_id=self.channel.channel_id,
            state=self._state,
            total=len(self.channel.files),
            uploaded=self.channel.count(UploadStatus.UPLOADED),
            failed=self.channel.count(UploadStatus.FAILED),
            skipped=self.channel.count(UploadStatus.SKIPPED),
            pending=self.channel.count(UploadStatus.PENDING),
            elapsed=elapsed,
        )
