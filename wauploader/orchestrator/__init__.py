"""Orchestrator package - sequences channel backups."""
from .core import BackupOrchestrator
from .models import RunSummary, SequencerState
from .recovery import CrashRecoveryHandler
from .sequencer import UploadSequencer

__all__ = [
    "BackupOrchestrator",
    "RunSummary",
    "SequencerState",
    "CrashRecoveryHandler",
    "UploadSequencer",
]
