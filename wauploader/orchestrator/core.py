"""Core orchestrator - runs channel backups one after another."""
import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from ..config import UploadConfig
from ..errors import AuthenticationError, StoreError
from ..models import DESCRIPTOR_COLUMNS, OWNED_COLUMNS, ChannelState, ProgressRecord, UploadStatus
from ..protocols import IBlobStore, ICredentialProvider, IMediaLibrary, IRowStore
from ..services.api_client import GoogleAPIClient
from ..services.drive import DriveClient
from ..services.photos import PhotosClient
from ..services.rate_limiter import AdaptiveRateLimiter
from ..services.reconciler import ProgressCheckpointer, StateReconciler
from ..services.router import TransferRouter
from ..services.row_store import MemoryRowStore
from ..services.sheets import SheetsRowStore, sheet_title
from ..utils.events import EventEmitter
from .models import RunSummary, SequencerState
from .recovery import CrashRecoveryHandler
from .sequencer import UploadSequencer

logger = logging.getLogger(__name__)

RowStoreFactory = Callable[[ChannelState], Awaitable[IRowStore]]

PROGRESS_KEY_COLUMN = "channel_id"


class BackupOrchestrator:
    """
    Backs up channels to Google Photos / Google Drive using injected services.

    Follows:
    - Dependency Injection (backends and stores can be injected)
    - Single Responsibility (per-channel work is delegated to UploadSequencer)

    Usage:
        async with BackupOrchestrator(StaticTokenProvider(token), config) as backup:
            backup.events.on("file_complete", lambda f, outcome: print(f.name))
            summaries = await backup.backup(channels)

    Each channel gets its own rate limiter and sequencer; nothing mutable is
    shared between channels.
    """

    def __init__(
        self,
        credentials: ICredentialProvider,
        config: Optional[UploadConfig] = None,
        media_library: Optional[IMediaLibrary] = None,
        blob_store: Optional[IBlobStore] = None,
        row_store_factory: Optional[RowStoreFactory] = None,
        progress_store: Optional[IRowStore] = None,
        recovery: Optional[CrashRecoveryHandler] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            credentials: Access token provider
            config: Upload configuration
            media_library: Media library backend (default: Google Photos)
            blob_store: Blob store backend (default: Google Drive)
            row_store_factory: Builds the row store for a channel (default:
                one Sheets tab per channel, or in-memory without a spreadsheet)
            progress_store: Row store for progress records (default: the
                progress tab of the spreadsheet, if one is configured)
            recovery: Shutdown handler (default: installs SIGINT/SIGTERM handlers)
            sleep: Sleep function for pacing and backoff
        """
        self._credentials = credentials
        self._config = config or UploadConfig()
        self._media = media_library
        self._blobs = blob_store
        self._row_store_factory = row_store_factory
        self._progress_store = progress_store
        self._recovery = recovery or CrashRecoveryHandler()
        self._sleep = sleep
        self.events = EventEmitter()

        # Initialized in __aenter__
        self._api_client: Optional[GoogleAPIClient] = None
        self._router: Optional[TransferRouter] = None

    def _needs_api(self) -> bool:
        uses_sheets = bool(self._config.spreadsheet_id) and (
            self._row_store_factory is None or self._progress_store is None
        )
        return self._media is None or self._blobs is None or uses_sheets

    async def __aenter__(self):
        """Check credentials and build services."""
        if not self._credentials.is_authenticated():
            raise AuthenticationError("Not authenticated - acquire a token before starting a backup")

        if self._needs_api():
            self._api_client = GoogleAPIClient(self._credentials, timeout=self._config.request_timeout)
            await self._api_client.__aenter__()

        if self._media is None:
            self._media = PhotosClient(self._api_client)
        if self._blobs is None:
            self._blobs = DriveClient(self._api_client, self._config)
        self._router = TransferRouter(self._media, self._blobs, self._config)

        if self._row_store_factory is None:
            if self._config.spreadsheet_id:
                self._row_store_factory = self._sheets_row_store
            else:
                logger.warning("No spreadsheet configured - state is kept in memory only")
                self._row_store_factory = self._memory_row_store

        if self._progress_store is None and self._config.spreadsheet_id:
            store = SheetsRowStore(
                self._api_client,
                self._config.spreadsheet_id,
                self._config.progress_sheet_name,
                key_column=PROGRESS_KEY_COLUMN,
                initial_columns=list(ProgressRecord("", "", 0).to_row()),
            )
            try:
                await store.ensure_sheet()
            except StoreError:
                await self.__aexit__(None, None, None)
                raise
            self._progress_store = store

        await self._recovery.__aenter__()
        return self

    async def __aexit__(self, *args):
        """Cleanup resources."""
        await self._recovery.__aexit__(*args)
        if self._api_client:
            await self._api_client.__aexit__(*args)
            self._api_client = None

    @property
    def recovery(self) -> CrashRecoveryHandler:
        return self._recovery

    async def _sheets_row_store(self, channel: ChannelState) -> IRowStore:
        store = SheetsRowStore(
            self._api_client,
            self._config.spreadsheet_id,
            sheet_title(channel.name or channel.channel_id),
            initial_columns=[*DESCRIPTOR_COLUMNS, *OWNED_COLUMNS],
        )
        await store.ensure_sheet()
        return store

    async def _memory_row_store(self, channel: ChannelState) -> IRowStore:
        return MemoryRowStore()

    def sequencer_for(self, channel: ChannelState, row_store: IRowStore) -> UploadSequencer:
        """Build a sequencer with a fresh limiter for one channel."""
        assert self._router is not None
        return UploadSequencer(
            channel,
            self._router,
            StateReconciler(row_store),
            AdaptiveRateLimiter.from_config(self._config, sleep=self._sleep),
            config=self._config,
            recovery=self._recovery,
            progress=ProgressCheckpointer(self._progress_store, self._config.checkpoint_interval),
            events=self.events,
            sleep=self._sleep,
        )

    async def backup_channel(self, channel: ChannelState) -> RunSummary:
        """Back up one channel. Store failures abort the channel, not the run."""
        assert self._row_store_factory is not None
        logger.info(f"Backing up channel {channel.channel_id} ({channel.name}): {len(channel.files)} files")
        try:
            row_store = await self._row_store_factory(channel)
            return await self.sequencer_for(channel, row_store).run()
        except StoreError as e:
            logger.error(f"Channel {channel.channel_id} aborted: {e}")
            return RunSummary(
                channel_id=channel.channel_id,
                state=SequencerState.ANALYZING,
                total=len(channel.files),
                uploaded=channel.count(UploadStatus.UPLOADED),
                failed=channel.count(UploadStatus.FAILED),
                skipped=channel.count(UploadStatus.SKIPPED),
                pending=channel.count(UploadStatus.PENDING),
                abort_reason=str(e),
            )

    async def backup(self, channels: Iterable[ChannelState]) -> List[RunSummary]:
        """Back up channels sequentially until done or shutdown is requested."""
        summaries: List[RunSummary] = []
        for channel in channels:
            if self._recovery.shutting_down:
                logger.info("Shutdown requested - not starting channel %s", channel.channel_id)
                break
            summaries.append(await self.backup_channel(channel))
        return summaries
