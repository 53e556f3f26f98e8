from .batching import BatchFlushController, FlushPolicy, FlushResult, FlushTrigger
from .channel import Channel, LocalBroker, LocalChannel, WebSocketChannel
from .codec import decode, encode
from .heartbeat import (
    EmitResult,
    FilterOutcome,
    FilterResult,
    HeartbeatEmitter,
    HeartbeatMonitor,
    Liveness,
    next_liveness,
)
from .sinks import DailyFileSink, FileSink, RotatingFileSink, write_heartbeat_file
