import asyncio
import json
import logging
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Protocol, Tuple, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..utilities import (
    LOCAL_HISTORY_SIZE,
    PUBLISH_ACK_TIMEOUT_S,
    ChannelError,
    as_text,
    make_publish,
    make_subscribe,
    make_unsubscribe,
)

logger = logging.getLogger(__name__)

Delivery = Tuple[str, bytes]


class Channel(Protocol):
    async def publish(self, topic: str, payload: bytes) -> None: ...

    async def poll(self, timeout_ms: int) -> List[Delivery]: ...


def _as_bytes(payload: Union[bytes, str]) -> bytes:
    return payload if isinstance(payload, bytes) else payload.encode("utf-8")


def _error_fields(frame: dict) -> Tuple[Optional[str], Optional[str]]:
    error = frame.get("error")
    if isinstance(error, dict):
        return error.get("code"), error.get("message")
    return None, (None if error is None else str(error))


def _timeout_seconds(timeout_ms: int) -> Optional[float]:
    # negative means wait indefinitely
    return None if timeout_ms < 0 else timeout_ms / 1000.0


# ------------ In-process channel ------------
class LocalTopic:
    def __init__(self, name: str):
        self.name = name
        self.subscribers: List["LocalChannel"] = []
        self.history: Deque[bytes] = deque(maxlen=LOCAL_HISTORY_SIZE)
        # stats
        self.messages_published = 0

    def publish(self, payload: bytes):
        self.history.append(payload)
        self.messages_published += 1
        for sub in list(self.subscribers):
            sub.inbox.put_nowait((self.name, payload))


class LocalBroker:
    '''In-memory broker; every channel subscribed to a topic receives every publish.'''

    def __init__(self):
        self.topics: Dict[str, LocalTopic] = {}
        self.closed = False

    def topic(self, name: str) -> LocalTopic:
        t = self.topics.get(name)
        if t is None:
            t = LocalTopic(name)
            self.topics[name] = t
        return t

    def publish(self, topic: str, payload: bytes):
        if self.closed:
            raise ChannelError("local broker is closed", topic)
        self.topic(topic).publish(payload)

    def channel(self, topics: Iterable[str] = ()) -> "LocalChannel":
        return LocalChannel(self, topics)

    def close(self):
        self.closed = True


class LocalChannel:
    def __init__(self, broker: LocalBroker, topics: Iterable[str] = ()):
        self.broker = broker
        self.inbox: "asyncio.Queue[Delivery]" = asyncio.Queue()
        self.topics = list(topics)
        for name in self.topics:
            broker.topic(name).subscribers.append(self)

    async def publish(self, topic: str, payload: Union[bytes, str]) -> None:
        self.broker.publish(topic, _as_bytes(payload))

    async def poll(self, timeout_ms: int) -> List[Delivery]:
        if self.inbox.empty():
            try:
                first = await asyncio.wait_for(self.inbox.get(), _timeout_seconds(timeout_ms))
            except asyncio.TimeoutError:
                return []
            out = [first]
        else:
            out = []
        while not self.inbox.empty():
            out.append(self.inbox.get_nowait())
        return out

    async def close(self):
        for name in self.topics:
            subs = self.broker.topic(name).subscribers
            if self in subs:
                subs.remove(self)


# ------------ WebSocket broker channel ------------
class WebSocketChannel:
    """Channel over a JSON-frame pub/sub broker.

    Requests carry a ``request_id`` and are answered by ``ack`` or ``error``
    frames; deliveries arrive as ``event`` frames whose ``message.payload``
    holds the published text. Events that arrive while a request waits for
    its ack are kept for the next ``poll``. A dropped connection raises
    ChannelError once; the next call reconnects and subscribes again.
    """

    def __init__(self, url: str, client_id: str, topics: Iterable[str] = (),
                 ack_timeout: float = PUBLISH_ACK_TIMEOUT_S):
        self.url = url
        self.client_id = client_id
        self.topics = list(topics)
        self.ack_timeout = ack_timeout
        self._ws = None
        self._events: Deque[Delivery] = deque()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self):
        if self._ws is not None:
            return
        try:
            self._ws = await websockets.connect(self.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            raise ChannelError(f"cannot connect to {self.url}: {exc}") from exc
        logger.info("Connected to broker at %s", self.url)
        try:
            for topic in self.topics:
                await self._request(make_subscribe(topic, self.client_id))
                logger.info("Subscribed to %s as %s", topic, self.client_id)
        except ChannelError:
            await self._drop()
            raise

    async def _drop(self):
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()

    async def _send(self, frame: dict):
        try:
            await self._ws.send(json.dumps(frame))
        except ConnectionClosed as exc:
            self._ws = None
            raise ChannelError(f"connection to {self.url} closed: {exc}", frame.get("topic")) from exc

    async def _recv(self, timeout: Optional[float]) -> Optional[dict]:
        '''Next frame as a dict, {} for garbage, None on timeout.'''
        try:
            text = await asyncio.wait_for(self._ws.recv(), timeout)
        except asyncio.TimeoutError:
            return None
        except ConnectionClosed as exc:
            self._ws = None
            raise ChannelError(f"connection to {self.url} closed: {exc}") from exc
        try:
            frame = json.loads(text)
        except (ValueError, RecursionError):
            logger.warning("Ignoring non-json frame from broker")
            return {}
        return frame if isinstance(frame, dict) else {}

    def _absorb(self, frame: dict):
        typ = frame.get("type")
        if typ == "event":
            message = frame.get("message") or {}
            payload = message.get("payload") if isinstance(message, dict) else message
            if not isinstance(payload, str):
                try:
                    payload = json.dumps(payload)
                except (ValueError, RecursionError):
                    logger.warning("Ignoring unserializable event on %s", frame.get("topic"))
                    return
            self._events.append((str(frame.get("topic") or ""), payload.encode("utf-8", "replace")))
        elif typ == "error":
            code, message = _error_fields(frame)
            logger.warning("Broker error on %s: %s %s", frame.get("topic"), code, message)
        elif typ == "info":
            logger.info("Broker info on %s: %s", frame.get("topic"), frame.get("msg"))

    async def _request(self, frame: dict) -> dict:
        request_id = frame["request_id"]
        await self._send(frame)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.ack_timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ChannelError(f"no ack for {frame['type']} within {self.ack_timeout}s",
                                   frame.get("topic"))
            reply = await self._recv(remaining)
            if reply is None:
                continue
            if reply.get("request_id") != request_id:
                self._absorb(reply)
                continue
            if reply.get("type") == "error":
                code, message = _error_fields(reply)
                raise ChannelError(f"{code}: {message}", frame.get("topic"))
            return reply

    async def publish(self, topic: str, payload: Union[bytes, str]) -> None:
        await self.connect()
        await self._request(make_publish(topic, as_text(payload)))

    async def poll(self, timeout_ms: int) -> List[Delivery]:
        await self.connect()
        if not self._events:
            timeout = _timeout_seconds(timeout_ms)
            loop = asyncio.get_running_loop()
            deadline = None if timeout is None else loop.time() + timeout
            while not self._events:
                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    break
                frame = await self._recv(remaining)
                if frame is None:
                    break
                self._absorb(frame)
        out = list(self._events)
        self._events.clear()
        return out

    async def close(self):
        if self._ws is None:
            return
        try:
            for topic in self.topics:
                await self._send(make_unsubscribe(topic, self.client_id))
        except ChannelError as exc:
            logger.debug("Ignoring error while closing: %s", exc)
        finally:
            await self._drop()
