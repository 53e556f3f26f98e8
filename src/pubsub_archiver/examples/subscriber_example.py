"""Prints, or batches to files, everything published on the given topics.

Heartbeats are stripped from the stream and a warning is logged when none
arrives within the heartbeat interval.

    python -m pubsub_archiver.examples.subscriber_example ws://localhost:8000/ws quakes --heartbeat-interval 30 --output-dir ./out --messages-per-file 10
"""
import argparse
import asyncio
import logging
import os
from typing import Callable, List, Optional

from ..models import BatchFlushController, FlushPolicy, HeartbeatMonitor, Liveness, RotatingFileSink, WebSocketChannel
from ..utilities import RETRY_DELAY_S, ChannelError

logger = logging.getLogger(__name__)


async def consume(channel, monitor: HeartbeatMonitor,
                  controller: Optional[BatchFlushController] = None,
                  cycles: Optional[int] = None, timeout_ms: int = 100,
                  out: Callable[[str], None] = print) -> int:
    '''Polls ``cycles`` times (forever when None); returns the application messages seen.'''
    received = 0
    done = 0
    while cycles is None or done < cycles:
        done += 1
        try:
            deliveries = await channel.poll(timeout_ms)
        except ChannelError as exc:
            logger.error("Poll failed: %s", exc)
            await asyncio.sleep(RETRY_DELAY_S)
            continue

        for _topic, payload in deliveries:
            message = monitor.filter(payload)
            if message is None:
                continue
            received += 1
            if controller is None:
                out(message)
            else:
                controller.enqueue(message)

        if controller is not None and controller.tick():
            logger.info("Wrote %d message(s) to %s", controller.last_result.count,
                        controller.last_result.path)
        if monitor.check_liveness() is Liveness.STALE:
            logger.warning("No heartbeat within %s seconds", monitor.interval)
    return received


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="print or batch messages from topics")
    parser.add_argument("url", help="broker websocket url")
    parser.add_argument("topics", nargs="+")
    parser.add_argument("--client-id", default="subscriber-example")
    parser.add_argument("--heartbeat-interval", type=int, default=None)
    parser.add_argument("--output-dir", default=None, help="write files here instead of printing")
    parser.add_argument("--messages-per-file", type=int, default=1)
    parser.add_argument("--time-per-file", type=int, default=None)
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    channel = WebSocketChannel(args.url, args.client_id, args.topics)
    monitor = HeartbeatMonitor(args.topics, args.heartbeat_interval)
    controller = None
    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)
        controller = BatchFlushController(
            RotatingFileSink(args.output_dir, "txt"),
            FlushPolicy(args.messages_per_file, args.time_per_file),
        )
    print("Awaiting messages... (press Ctrl+C to exit)")
    try:
        await consume(channel, monitor, controller)
    finally:
        await channel.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Unsubscribed.")
