from typing import List, Optional


class ArchiverError(Exception):
    """Base class for every error raised by pubsub_archiver."""


class ConfigError(ArchiverError):
    """Configuration file missing, unparseable or failing validation."""


class ChannelError(ArchiverError):
    """Publish or poll failed at the transport level."""

    def __init__(self, message: str, topic: Optional[str] = None):
        super().__init__(message)
        self.topic = topic


class CodecError(ArchiverError):
    """Payload could not be parsed as a JSON object."""


class HeartbeatValidationError(ArchiverError):
    """A heartbeat parsed but is missing required fields."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class SinkError(ArchiverError):
    """Writing or rotating an output file failed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
