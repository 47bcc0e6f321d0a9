"""Services for wauploader."""
from .api_client import GoogleAPIClient, StaticTokenProvider
from .dedup import DedupReport, DuplicateDetector, blake3_file
from .drive import DriveClient
from .photos import PhotosClient
from .rate_limiter import AdaptiveRateLimiter, RateLimiterState
from .reconciler import ProgressCheckpointer, StateReconciler
from .retry import ErrorKind, RetryClassifier
from .router import TransferMode, TransferRouter
from .row_store import MemoryRowStore
from .sheets import SheetsRowStore

__all__ = [
    "GoogleAPIClient",
    "StaticTokenProvider",
    "DedupReport",
    "DuplicateDetector",
    "blake3_file",
    "DriveClient",
    "PhotosClient",
    "AdaptiveRateLimiter",
    "RateLimiterState",
    "ProgressCheckpointer",
    "StateReconciler",
    "ErrorKind",
    "RetryClassifier",
    "TransferMode",
    "TransferRouter",
    "MemoryRowStore",
    "SheetsRowStore",
]
