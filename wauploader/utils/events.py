from dataclasses import dataclass
from typing import Dict, List, Callable, Set
import asyncio
import functools
import logging
logger = logging.getLogger(__name__)


@dataclass
class FileProgress:
    """Byte-level progress of the file currently in flight."""
    file_id: str
    filename: str
    bytes_uploaded: int = 0
    total_bytes: int = 0

    @property
    def percent(self) -> float:
        if not self.total_bytes:
            return 0.0
        return min(100.0, self.bytes_uploaded * 100.0 / self.total_bytes)


class EventEmitter:
    """Simple event emitter for sequencer events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        listeners = self._listeners.setdefault(event_name, [])
        if callback not in listeners:
            listeners.append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if callback in self._listeners.get(event_name, []):
            self._listeners[event_name].remove(callback)

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners. Listener errors are logged, never raised."""
        for callback in self._listeners.get(event_name, [])[:]:
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(*args, **kwargs)
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")

    def emit_nowait(self, event_name: str, *args, **kwargs):
        """Emit from synchronous code (e.g. byte progress callbacks).

        Only synchronous listeners are invoked; coroutine listeners are
        scheduled on the running loop.
        """
        for callback in self._listeners.get(event_name, [])[:]:
            try:
                if asyncio.iscoroutinefunction(callback):
                    task = asyncio.get_running_loop().create_task(callback(*args, **kwargs))
                    self._pending.add(task)
                    task.add_done_callback(functools.partial(self._task_done, event_name))
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")

    def _task_done(self, event_name: str, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error in event listener for {event_name}: {error}")

    async def drain(self):
        """Wait for listener tasks scheduled by emit_nowait."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
