import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Optional, Union

from ..utilities import SinkError, as_text
from .sinks import FileSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlushPolicy:
    max_messages_per_file: int = 1
    max_seconds_per_file: Optional[float] = None

    def __post_init__(self):
        if self.max_messages_per_file < 1:
            raise ValueError("max_messages_per_file must be at least 1")


class FlushTrigger(str, Enum):
    COUNT = "count"
    TIME = "time"


@dataclass(frozen=True)
class FlushResult:
    trigger: FlushTrigger
    count: int
    path: Optional[str] = None
    error: Optional[SinkError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchFlushController:
    """Owns the pending queue and decides when a batch goes to the sink.

    Each ``tick`` applies, in order:

    1. the queue holds at least ``max_messages_per_file`` messages: write
       exactly that many of the oldest ones and keep the remainder queued;
    2. ``max_seconds_per_file`` is set and more than that many seconds have
       passed since the last flush: write everything queued;
    3. otherwise do nothing.

    Writes are best effort. A failed batch is not re-queued and the flush
    clock advances anyway. The outcome of the latest flush is kept in ``last_result``.
    """

    def __init__(self, sink: FileSink, policy: Optional[FlushPolicy] = None,
                 clock: Callable[[], float] = time.time):
        self.sink = sink
        self.policy = policy or FlushPolicy()
        self._clock = clock
        self._queue: Deque[str] = deque()
        self.last_flush_timestamp: float = clock()
        self.last_result: Optional[FlushResult] = None
        # stats
        self.flushes_ok = 0
        self.flushes_failed = 0
        self.messages_written = 0
        self.messages_lost = 0

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def enqueue(self, message: Union[str, bytes, None]) -> bool:
        if not message:
            return False
        self._queue.append(as_text(message))
        return True

    def due_trigger(self) -> Optional[FlushTrigger]:
        if not self._queue:
            return None
        if len(self._queue) >= self.policy.max_messages_per_file:
            return FlushTrigger.COUNT
        if self.policy.max_seconds_per_file is not None:
            elapsed = self._clock() - self.last_flush_timestamp
            if elapsed > self.policy.max_seconds_per_file:
                return FlushTrigger.TIME
        return None

    def tick(self) -> bool:
        '''Runs one flush decision; True when a flush was attempted.'''
        trigger = self.due_trigger()
        if trigger is None:
            return False
        if trigger is FlushTrigger.COUNT:
            logger.info("Writing output file due to number of messages, %d pending.",
                        len(self._queue))
            count = self.policy.max_messages_per_file
        else:
            logger.info("Writing output file due to time, %.0f seconds since last file.",
                        self._clock() - self.last_flush_timestamp)
            count = len(self._queue)
        self.last_result = self._flush(count, trigger)
        return True

    def _flush(self, count: int, trigger: FlushTrigger) -> FlushResult:
        batch = [self._queue.popleft() for _ in range(min(count, len(self._queue)))]
        try:
            path = self.sink.write_batch(batch)
        except SinkError as exc:
            self.flushes_failed += 1
            self.messages_lost += len(batch)
            result = FlushResult(trigger, len(batch), exc.path, exc)
        else:
            self.flushes_ok += 1
            self.messages_written += len(batch)
            result = FlushResult(trigger, len(batch), path)
        self.last_flush_timestamp = self._clock()
        return result
