"""
wauploader - WhatsApp media backup to Google Photos and Google Drive.

Photos and videos go to a Google Photos album per chat, everything else to
a Google Drive folder per chat. Per-file state lives in a Google Sheets tab
that people may edit while a backup runs.

Usage:
    from wauploader import BackupOrchestrator, ChannelState, StaticTokenProvider, UploadConfig

    config = UploadConfig.from_env(spreadsheet_id="1AbC...")
    channel = ChannelState.from_descriptors("5511999999999@s.whatsapp.net", "Family", descriptors)

    async with BackupOrchestrator(StaticTokenProvider(token), config) as backup:
        summaries = await backup.backup([channel])
"""
from .config import UploadConfig
from .errors import AuthenticationError, StoreError, TransferError, UploaderError, normalize_error
from .models import (
    ChannelState,
    ContainerRef,
    Destination,
    FileDescriptor,
    MediaType,
    ProgressRecord,
    TrackedFile,
    TransferOutcome,
    UploadStatus,
)
from .orchestrator import (
    BackupOrchestrator,
    CrashRecoveryHandler,
    RunSummary,
    SequencerState,
    UploadSequencer,
)
from .services import (
    AdaptiveRateLimiter,
    DriveClient,
    DuplicateDetector,
    GoogleAPIClient,
    MemoryRowStore,
    PhotosClient,
    RetryClassifier,
    SheetsRowStore,
    StateReconciler,
    StaticTokenProvider,
    TransferRouter,
)

__version__ = "0.1.0"
__all__ = [
    # Main
    "BackupOrchestrator",
    "UploadSequencer",
    "CrashRecoveryHandler",
    "RunSummary",
    "SequencerState",
    # Config
    "UploadConfig",
    # Models
    "ChannelState",
    "ContainerRef",
    "Destination",
    "FileDescriptor",
    "MediaType",
    "ProgressRecord",
    "TrackedFile",
    "TransferOutcome",
    "UploadStatus",
    # Errors
    "UploaderError",
    "AuthenticationError",
    "StoreError",
    "TransferError",
    "normalize_error",
    # Services
    "AdaptiveRateLimiter",
    "DriveClient",
    "DuplicateDetector",
    "GoogleAPIClient",
    "MemoryRowStore",
    "PhotosClient",
    "RetryClassifier",
    "SheetsRowStore",
    "StateReconciler",
    "StaticTokenProvider",
    "TransferRouter",
]
