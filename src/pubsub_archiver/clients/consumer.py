import logging
import time
from typing import Any, Callable, Dict, Optional

from ..models import BatchFlushController, FlushPolicy, HeartbeatMonitor, RotatingFileSink, WebSocketChannel
from ..schemas import ConsumerClientConfig
from .base import ConsumingClient, default_client_id, ensure_directory

logger = logging.getLogger(__name__)


class ConsumerClient(ConsumingClient):
    """Consumes topics into count/time rotated files.

    Each cycle polls once, enqueues the application messages, lets the flush
    controller decide whether a file is due, then checks heartbeat liveness.
    """

    client_type = "ConsumerClient"

    def __init__(self, config: ConsumerClientConfig, channel=None,
                 clock: Callable[[], float] = time.time):
        super().__init__(config)
        logger.info("Using configured fileExtension of: %s", config.file_extension)
        logger.info("Using configured fileName of: %r", config.file_name)
        logger.info("Using configured outputDirectory of: %s", config.output_directory)
        logger.info("Using messagesPerFile of: %d", config.messages_per_file)
        if config.time_per_file is None:
            logger.info("Not using timePerFile.")
        else:
            logger.info("Using configured timePerFile of: %d", config.time_per_file)
        if config.heartbeat_interval is None:
            logger.info("Not using heartbeatInterval, not checking heartbeats.")
        else:
            logger.info("Using configured heartbeatInterval of: %d", config.heartbeat_interval)

        ensure_directory(config.output_directory)
        ensure_directory(config.heartbeat_directory)

        self.sink = RotatingFileSink(config.output_directory, config.file_extension,
                                     config.file_name, clock=clock)
        self.controller = BatchFlushController(
            self.sink,
            FlushPolicy(config.messages_per_file, config.time_per_file),
            clock=clock,
        )
        self.monitor = HeartbeatMonitor(config.topic_list, config.heartbeat_interval,
                                        config.heartbeat_directory, clock=clock)
        client_id = config.broker_config.client_id or default_client_id(self.client_type)
        self.channel = channel or WebSocketChannel(config.broker_config.url, client_id,
                                                   config.topic_list)

    def stats(self) -> Dict[str, Any]:
        out = super().stats()
        out.update({
            "pending": self.controller.pending,
            "flushes_ok": self.controller.flushes_ok,
            "flushes_failed": self.controller.flushes_failed,
            "messages_written": self.controller.messages_written,
            "messages_lost": self.controller.messages_lost,
        })
        return out

    async def cycle(self) -> Optional[bool]:
        for _topic, payload in await self.poll(self.config.poll_timeout):
            message = self.absorb(payload)
            if message is not None:
                self.controller.enqueue(message)

        flushed = self.controller.tick()
        if flushed:
            result = self.controller.last_result
            if result.ok:
                logger.info("Wrote %d message(s) to %s", result.count, result.path)
            else:
                logger.error("Lost %d message(s), %s", result.count, result.error)
        elif not self.controller.pending:
            logger.debug("No messages to write.")

        self.check_liveness()
        return flushed
