import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from . import __version__
from .clients import CLIENTS, configure_logging
from .schemas import ArchiveClientConfig, ConsumerClientConfig, ProducerClientConfig, load_config
from .utilities import ConfigError

logger = logging.getLogger(__name__)

CONFIG_MODELS = {
    "ConsumerClient": ConsumerClientConfig,
    "ArchiveClient": ArchiveClientConfig,
    "ProducerClient": ProducerClientConfig,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pubsub-archiver",
        description=f"pubsub-archiver v{__version__}: batch pub/sub topics into files",
    )
    parser.add_argument("client_type", choices=sorted(CLIENTS), help="client role to run")
    parser.add_argument("config_file", help="JSON configuration file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config_file, CONFIG_MODELS[args.client_type])
    except ConfigError as exc:
        print(f"Error, {exc}", file=sys.stderr)
        return 1

    configure_logging(config.log_config_file)
    client = CLIENTS[args.client_type](config)
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        logger.info("%s stopped by user", args.client_type)
    return 0


if __name__ == "__main__":
    sys.exit(main())
