import asyncio
import logging
import os
import shutil
import time
from typing import Any, Callable, Dict, List, Optional

from ..models import HeartbeatEmitter, WebSocketChannel
from ..schemas import ProducerClientConfig
from ..utilities import IDLE_DELAY_S, ChannelError
from .base import BaseClient, ensure_directory

logger = logging.getLogger(__name__)


class ProducerClient(BaseClient):
    """Publishes the lines of files dropped into an input directory.

    One file is handled per cycle, one message per line. The file is then
    deleted, or moved to the archive directory when one is configured. A
    heartbeat rides along after every send, and an idle cycle with no input
    file sends one on its own, both subject to the emitter's throttle.
    """

    client_type = "ProducerClient"

    def __init__(self, config: ProducerClientConfig, channel=None,
                 clock: Callable[[], float] = time.time):
        super().__init__(config)
        logger.info("Using configured Topic of: %s", config.topic)
        logger.info("Using configured fileExtension of: %s", config.file_extension)
        logger.info("Using configured inputDirectory of: %s", config.input_directory)
        if config.archive_directory is None:
            logger.info("Not using archiveDirectory.")
        else:
            logger.info("Using configured archiveDirectory of: %s", config.archive_directory)
        if config.heartbeat_interval is None:
            logger.info("Not using heartbeatInterval, not sending heartbeat messages.")
        else:
            logger.info("Using configured heartbeatInterval of: %d", config.heartbeat_interval)

        client_id = config.broker_config.client_id
        if config.heartbeat_interval is not None and not client_id:
            logger.warning("No client.id in BrokerConfig, heartbeats will not be sent.")

        ensure_directory(config.archive_directory)

        self.channel = channel or WebSocketChannel(config.broker_config.url,
                                                   client_id or self.client_type)
        self.emitter = HeartbeatEmitter(self.channel, client_id, config.heartbeat_interval,
                                        clock=clock)
        # stats
        self.messages_sent = 0
        self.messages_failed = 0
        self.files_processed = 0

    def stats(self) -> Dict[str, Any]:
        out = super().stats()
        out.update({
            "messages_sent": self.messages_sent,
            "messages_failed": self.messages_failed,
            "files_processed": self.files_processed,
            "heartbeats_sent": self.emitter.heartbeats_sent,
            "heartbeats_failed": self.emitter.heartbeats_failed,
        })
        return out

    def next_input_file(self) -> Optional[str]:
        for name in sorted(os.listdir(self.config.input_directory)):
            path = os.path.join(self.config.input_directory, name)
            if name.endswith(self.config.file_extension) and os.path.isfile(path):
                return path
        return None

    def read_messages_from_file(self) -> Optional[List[str]]:
        '''Lines of the next input file, or None when there is nothing to send.'''
        try:
            path = self.next_input_file()
        except OSError as exc:
            logger.error("read_messages_from_file: %s", exc)
            return None
        if path is None:
            return None

        logger.debug("Found File: %s", path)
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as handle:
                messages = handle.read().splitlines()
        except OSError as exc:
            # left in place, retried next cycle
            logger.error("read_messages_from_file: %s", exc)
            return None
        self._retire(path)
        self.files_processed += 1
        return messages

    def _retire(self, path: str):
        try:
            if self.config.archive_directory is None:
                os.remove(path)
            else:
                shutil.move(path, os.path.join(self.config.archive_directory,
                                               os.path.basename(path)))
        except OSError as exc:
            logger.error("Could not remove input file %s: %s", path, exc)

    async def send(self, message: str) -> bool:
        logger.debug("Sending message: %s", message)
        sent = True
        try:
            await self.channel.publish(self.config.topic, message.encode("utf-8"))
            self.messages_sent += 1
        except ChannelError as exc:
            sent = False
            self.messages_failed += 1
            self.transport_errors += 1
            logger.error("Send failed: %s", exc)
        await self.heartbeat()
        return sent

    async def heartbeat(self):
        result = await self.emitter.maybe_emit(self.config.topic)
        if result.error is not None:
            logger.error("Heartbeat not delivered: %s", result.error)
        elif result.sent:
            logger.debug("Sent heartbeat on %s", self.config.topic)

    async def cycle(self) -> int:
        messages = self.read_messages_from_file()
        if messages is not None:
            for message in messages:
                await self.send(message)
        else:
            logger.debug("Sending idle heartbeat")
            await self.heartbeat()

        if self.config.time_per_file is not None:
            await asyncio.sleep(self.config.time_per_file)
        elif messages is None:
            await asyncio.sleep(IDLE_DELAY_S)
        return len(messages or [])
