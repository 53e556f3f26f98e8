"""Heartbeat liveness: producer-side throttled emission and consumer-side
stripping and staleness detection."""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Optional, Union

from ..schemas import HeartbeatRecord
from ..utilities import ArchiverError, ChannelError, HeartbeatValidationError, SinkError, as_text, utc_from_epoch
from .codec import decode, encode
from .sinks import write_heartbeat_file

logger = logging.getLogger(__name__)


class Liveness(str, Enum):
    HEALTHY = "healthy"
    STALE = "stale"


def next_liveness(elapsed: float, interval: Optional[float]) -> Liveness:
    if interval is None:
        return Liveness.HEALTHY
    return Liveness.STALE if elapsed > interval else Liveness.HEALTHY


class FilterOutcome(str, Enum):
    APPLICATION = "application"
    HEARTBEAT = "heartbeat"
    INVALID_HEARTBEAT = "invalid_heartbeat"
    FOREIGN_HEARTBEAT = "foreign_heartbeat"


@dataclass(frozen=True)
class FilterResult:
    outcome: FilterOutcome
    message: Optional[str] = None
    record: Optional[HeartbeatRecord] = None
    error: Optional[HeartbeatValidationError] = None
    persist_error: Optional[SinkError] = None


class HeartbeatMonitor:
    """Consumer side of the heartbeat protocol.

    Only a valid heartbeat whose topic is subscribed refreshes the liveness
    timestamp, which is shared by all subscribed topics. ``check_liveness``
    resets that timestamp when it reports STALE, so a silent channel yields
    one alert per interval rather than one per poll.
    """

    def __init__(self, topics: Iterable[str], interval: Optional[float] = None,
                 heartbeat_directory: Optional[str] = None,
                 clock: Callable[[], float] = time.time):
        self.topics: FrozenSet[str] = frozenset(topics)
        self.interval = interval
        self.heartbeat_directory = heartbeat_directory
        self._clock = clock
        self.last_heartbeat_seen: float = clock()
        self.state = Liveness.HEALTHY
        # stats
        self.heartbeats_seen = 0
        self.heartbeats_invalid = 0
        self.heartbeats_foreign = 0
        self.stale_alerts = 0

    def classify(self, payload: Union[bytes, str]) -> FilterResult:
        record = decode(payload)
        if record is None:
            return FilterResult(FilterOutcome.APPLICATION, message=as_text(payload))

        errors = record.get_errors()
        if errors:
            self.heartbeats_invalid += 1
            return FilterResult(FilterOutcome.INVALID_HEARTBEAT, record=record,
                                error=HeartbeatValidationError(errors))

        if record.topic not in self.topics:
            self.heartbeats_foreign += 1
            return FilterResult(FilterOutcome.FOREIGN_HEARTBEAT, record=record)

        self.heartbeats_seen += 1
        self.last_heartbeat_seen = self._clock()

        persist_error = None
        if self.heartbeat_directory:
            try:
                write_heartbeat_file(self.heartbeat_directory, record)
            except SinkError as exc:
                persist_error = exc
        return FilterResult(FilterOutcome.HEARTBEAT, record=record, persist_error=persist_error)

    def filter(self, payload: Union[bytes, str]) -> Optional[str]:
        return self.classify(payload).message

    def seconds_since_heartbeat(self) -> float:
        return self._clock() - self.last_heartbeat_seen

    def check_liveness(self) -> Liveness:
        now = self._clock()
        self.state = next_liveness(now - self.last_heartbeat_seen, self.interval)
        if self.state is Liveness.STALE:
            self.stale_alerts += 1
            self.last_heartbeat_seen = now
        return self.state


@dataclass(frozen=True)
class EmitResult:
    sent: bool
    record: Optional[HeartbeatRecord] = None
    error: Optional[ArchiverError] = None

    @property
    def ok(self) -> bool:
        return self.sent and self.error is None


class HeartbeatEmitter:
    """Producer side of the heartbeat protocol.

    ``interval`` of None disables heartbeats, a negative interval sends on
    every call. The throttle timestamp moves on every attempt, failed or not.
    """

    def __init__(self, channel, client_id: Optional[str], interval: Optional[float] = None,
                 clock: Callable[[], float] = time.time):
        self.channel = channel
        self.client_id = client_id
        self.interval = interval
        self._clock = clock
        self.last_heartbeat_sent: float = clock()
        # stats
        self.heartbeats_sent = 0
        self.heartbeats_failed = 0

    def due(self) -> bool:
        if self.interval is None:
            return False
        if self.interval < 0:
            return True
        return self._clock() - self.last_heartbeat_sent >= self.interval

    async def maybe_emit(self, topic: str) -> EmitResult:
        if not self.due():
            return EmitResult(sent=False)

        now = self._clock()
        record = HeartbeatRecord(time=utc_from_epoch(now), topic=topic, client_id=self.client_id)
        self.last_heartbeat_sent = now

        errors = record.get_errors()
        if errors:
            self.heartbeats_failed += 1
            return EmitResult(sent=False, record=record, error=HeartbeatValidationError(errors))

        try:
            await self.channel.publish(topic, encode(record))
        except ChannelError as exc:
            self.heartbeats_failed += 1
            return EmitResult(sent=True, record=record, error=exc)
        self.heartbeats_sent += 1
        return EmitResult(sent=True, record=record)
