import logging
import time
from typing import Any, Callable, Dict, List

from ..models import DailyFileSink, HeartbeatMonitor, WebSocketChannel
from ..schemas import ArchiveClientConfig
from ..utilities import SinkError
from .base import ConsumingClient, default_client_id, ensure_directory

logger = logging.getLogger(__name__)


class ArchiveClient(ConsumingClient):
    '''Appends everything received on its topics to one file per UTC day.'''

    client_type = "ArchiveClient"

    def __init__(self, config: ArchiveClientConfig, channel=None,
                 clock: Callable[[], float] = time.time):
        super().__init__(config)
        logger.info("Using configured fileExtension of: %s", config.file_extension)
        logger.info("Using configured fileName of: %r", config.file_name)
        logger.info("Using configured outputDirectory of: %s", config.output_directory)
        logger.info("Using poll timeout of: %d", config.poll_timeout)

        ensure_directory(config.output_directory)
        ensure_directory(config.heartbeat_directory)

        self.sink = DailyFileSink(config.output_directory, config.file_extension,
                                  config.file_name, clock=clock)
        self.monitor = HeartbeatMonitor(config.topic_list, config.heartbeat_interval,
                                        config.heartbeat_directory, clock=clock)
        client_id = config.broker_config.client_id or default_client_id(self.client_type)
        self.channel = channel or WebSocketChannel(config.broker_config.url, client_id,
                                                   config.topic_list)
        # stats
        self.messages_written = 0
        self.messages_lost = 0

    def stats(self) -> Dict[str, Any]:
        out = super().stats()
        out.update({
            "archive_file": self.sink.current_path,
            "messages_written": self.messages_written,
            "messages_lost": self.messages_lost,
        })
        return out

    async def cycle(self) -> int:
        messages: List[str] = []
        for _topic, payload in await self.poll(self.config.poll_timeout * 1000):
            message = self.absorb(payload)
            if message:
                messages.append(message)

        if messages:
            try:
                path = self.sink.write_batch(messages)
            except SinkError as exc:
                self.messages_lost += len(messages)
                logger.error("Lost %d message(s), %s", len(messages), exc)
            else:
                self.messages_written += len(messages)
                logger.info("Updated archive file: %s with %d additional message(s).",
                            path, len(messages))

        self.check_liveness()
        return len(messages)

    async def shutdown(self):
        self.sink.close()
        await super().shutdown()
