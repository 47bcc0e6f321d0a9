"""Orchestrator data models."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SequencerState(Enum):
    """State of a channel run."""
    IDLE = "idle"
    ANALYZING = "analyzing"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


@dataclass
class RunSummary:
    """Result of one channel run."""
    channel_id: str
    state: SequencerState
    total: int
    uploaded: int = 0
    failed: int = 0
    skipped: int = 0
    pending: int = 0
    elapsed: float = 0.0  # seconds
    abort_reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state == SequencerState.COMPLETED and self.abort_reason is None

    @property
    def interrupted(self) -> bool:
        return self.state == SequencerState.INTERRUPTED
