import asyncio
import logging
import logging.config
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from ..main import StatusServer
from ..models import FilterOutcome, HeartbeatMonitor, Liveness
from ..schemas import ClientConfig
from ..utilities import RETRY_DELAY_S, ChannelError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(log_config_file: Optional[str] = None, level: int = logging.INFO):
    if log_config_file:
        print("Using custom logging configuration")
        logging.config.fileConfig(log_config_file, disable_existing_loggers=False)
    else:
        print("Using default logging configuration")
        logging.basicConfig(level=level, format=LOG_FORMAT)


def default_client_id(client_type: str) -> str:
    return f"{client_type}-{uuid.uuid4().hex[:8]}"


def ensure_directory(path: Optional[str]):
    if path and not os.path.isdir(path):
        os.makedirs(path, exist_ok=True)
        logger.info("Created directory %s", path)


class BaseClient:
    '''Shared run loop, status reporting and shutdown for every client role.'''

    client_type = ""

    def __init__(self, config: ClientConfig):
        self.config = config
        self.channel = None
        self.started_at = datetime.now(timezone.utc)
        self.status_server: Optional[StatusServer] = None
        self.transport_errors = 0

    # ------------ status ------------
    def liveness(self) -> Liveness:
        return Liveness.HEALTHY

    def health(self) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        uptime_sec = int((now - self.started_at).total_seconds())
        return {"client": self.client_type, "uptime_sec": uptime_sec,
                "liveness": self.liveness().value}

    def stats(self) -> Dict[str, Any]:
        return {"transport_errors": self.transport_errors}

    # ------------ loop ------------
    async def cycle(self):
        raise NotImplementedError()

    async def run(self):
        logger.info("----------%s Startup----------", self.client_type)
        if self.config.status_port is not None:
            self.status_server = StatusServer(self, self.config.status_port)
            self.status_server.start()
            logger.info("Serving status on port %d", self.config.status_port)
        try:
            while True:
                await self.cycle()
        finally:
            await self.shutdown()

    async def shutdown(self):
        if self.channel is not None and hasattr(self.channel, "close"):
            await self.channel.close()
        if self.status_server is not None:
            await self.status_server.stop()
        logger.info("----------%s Shutdown----------", self.client_type)


class ConsumingClient(BaseClient):
    '''Client that polls topics and strips heartbeats from what it receives.'''

    monitor: HeartbeatMonitor

    def liveness(self) -> Liveness:
        return self.monitor.state

    def stats(self) -> Dict[str, Any]:
        out = super().stats()
        out.update({
            "heartbeats_seen": self.monitor.heartbeats_seen,
            "heartbeats_invalid": self.monitor.heartbeats_invalid,
            "heartbeats_foreign": self.monitor.heartbeats_foreign,
            "stale_alerts": self.monitor.stale_alerts,
            "seconds_since_heartbeat": round(self.monitor.seconds_since_heartbeat(), 3),
        })
        return out

    def absorb(self, payload: Union[bytes, str]) -> Optional[str]:
        '''Classifies one inbound payload; returns the application message, if any.'''
        result = self.monitor.classify(payload)
        if result.outcome is FilterOutcome.APPLICATION:
            logger.debug(result.message)
        elif result.outcome is FilterOutcome.HEARTBEAT:
            logger.debug("Heartbeat from %s on %s", result.record.client_id, result.record.topic)
            if result.persist_error is not None:
                logger.error("Could not persist heartbeat: %s", result.persist_error)
        elif result.outcome is FilterOutcome.INVALID_HEARTBEAT:
            logger.warning("Dropped invalid heartbeat: %s", result.error)
        else:
            logger.debug("Dropped heartbeat for unsubscribed topic %s", result.record.topic)
        return result.message

    def check_liveness(self) -> Liveness:
        elapsed = self.monitor.seconds_since_heartbeat()
        state = self.monitor.check_liveness()
        if state is Liveness.STALE:
            logger.warning("No heartbeat seen in %.0f seconds on %s (interval %s).",
                           elapsed, ", ".join(sorted(self.monitor.topics)), self.monitor.interval)
        return state

    async def poll(self, timeout_ms: int):
        try:
            return await self.channel.poll(timeout_ms)
        except ChannelError as exc:
            self.transport_errors += 1
            logger.error("Poll failed: %s", exc)
            await asyncio.sleep(RETRY_DELAY_S)
            return []
