"""Publishes each line typed on stdin to one topic, with heartbeats.

    python -m pubsub_archiver.examples.publisher_example ws://localhost:8000/ws quakes --client-id p1 --heartbeat-interval 30
"""
import argparse
import asyncio
import logging
import sys
from typing import Iterable, List, Optional

from ..models import HeartbeatEmitter, WebSocketChannel
from ..utilities import ChannelError

logger = logging.getLogger(__name__)


async def publish_lines(channel, topic: str, lines: Iterable[str],
                        emitter: Optional[HeartbeatEmitter] = None) -> int:
    sent = 0
    for line in lines:
        try:
            await channel.publish(topic, line.encode("utf-8", "replace"))
            sent += 1
        except ChannelError as exc:
            logger.error("Send failed: %s", exc)
        if emitter is not None:
            await emitter.maybe_emit(topic)
    return sent


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="publish stdin lines to a topic")
    parser.add_argument("url", help="broker websocket url")
    parser.add_argument("topic")
    parser.add_argument("--client-id", default="publisher-example")
    parser.add_argument("--heartbeat-interval", type=int, default=None,
                        help="seconds between heartbeats, negative for every message")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    channel = WebSocketChannel(args.url, args.client_id)
    emitter = HeartbeatEmitter(channel, args.client_id, args.heartbeat_interval)
    print("Type messages to publish... (Ctrl+D to exit)")
    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            await publish_lines(channel, args.topic, [line.rstrip("\n")], emitter)
    finally:
        await channel.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
