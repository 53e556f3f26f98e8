"""File sinks for flushed batches.

Both sinks append a line terminator to any message that lacks one, so the
output is always newline delimited.
"""
import logging
import os
import time
from typing import Callable, Optional, Sequence, TextIO, Tuple

from ..schemas import HeartbeatRecord
from ..utilities import HEARTBEAT_FILE_EXTENSION, SinkError, ensure_newline, utc_date_string, utc_from_epoch
from .codec import encode

logger = logging.getLogger(__name__)


class FileSink:
    '''Minimal sink contract: write_batch returns the path written to.'''

    def write_batch(self, messages: Sequence[str]) -> str:
        raise NotImplementedError()

    def close(self) -> None:
        pass


class RotatingFileSink(FileSink):
    """Writes every batch to a brand new file named after the current epoch
    milliseconds.

    Two batches written within the same millisecond land on the same name and
    the second overwrites the first.
    """

    def __init__(self, directory: str, extension: str, name: str = "",
                 clock: Callable[[], float] = time.time):
        self.directory = directory
        self.extension = extension
        self.name = name
        self._clock = clock

    def next_path(self) -> str:
        millis = int(self._clock() * 1000)
        return os.path.join(self.directory, f"{millis}{self.name}.{self.extension}")

    def write_batch(self, messages: Sequence[str]) -> str:
        path = self.next_path()
        try:
            with open(path, "w", encoding="utf-8") as handle:
                for message in messages:
                    handle.write(ensure_newline(message))
        except (OSError, UnicodeError) as exc:
            raise SinkError(f"failed writing {path}: {exc}", path) from exc
        return path


class DailyFileSink(FileSink):
    """Appends to one file per UTC calendar day.

    Every batch is flushed as soon as it is written. The day is compared only
    after a write, so a day without traffic rotates on the next batch; the
    batch that triggers rotation still lands in the previous day's file.
    """

    def __init__(self, directory: str, extension: str, name: str = "",
                 clock: Callable[[], float] = time.time):
        self.directory = directory
        self.extension = extension
        self.name = name
        self._clock = clock
        self._handle: Optional[TextIO] = None
        self._opened_day: Optional[Tuple[int, int]] = None
        self.current_path: Optional[str] = None

    def _today(self) -> Tuple[int, int]:
        now = utc_from_epoch(self._clock())
        return (now.year, now.timetuple().tm_yday)

    def path_for_now(self) -> str:
        date = utc_date_string(utc_from_epoch(self._clock()))
        stem = f"{date}_{self.name}" if self.name else date
        return os.path.join(self.directory, f"{stem}.{self.extension}")

    def _open(self) -> TextIO:
        path = self.path_for_now()
        try:
            self._handle = open(path, "a", encoding="utf-8")
        except OSError as exc:
            self._handle = None
            raise SinkError(f"failed opening {path}: {exc}", path) from exc
        self._opened_day = self._today()
        self.current_path = path
        return self._handle

    def _rotate_if_new_day(self) -> bool:
        if self._opened_day is None or self._today() <= self._opened_day:
            return False
        previous = self.current_path
        self.close()
        self._open()
        logger.info("Switched archive file from %s to %s", previous, self.current_path)
        return True

    def write_batch(self, messages: Sequence[str]) -> str:
        handle = self._handle if self._handle is not None else self._open()
        path = self.current_path
        error: Optional[SinkError] = None
        try:
            for message in messages:
                handle.write(ensure_newline(message))
            handle.flush()
        except (OSError, UnicodeError) as exc:
            error = SinkError(f"failed writing {path}: {exc}", path)
        # rotation is checked even when the write failed
        try:
            self._rotate_if_new_day()
        except SinkError as exc:
            error = error or exc
        if error is not None:
            raise error
        return path

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.close()
        except OSError as exc:
            logger.warning("Error closing %s: %s", self.current_path, exc)
        finally:
            self._handle = None


def heartbeat_path(directory: str, record: HeartbeatRecord) -> str:
    return os.path.join(
        directory, f"{record.topic}_{record.client_id}.{HEARTBEAT_FILE_EXTENSION}"
    )


def write_heartbeat_file(directory: str, record: HeartbeatRecord) -> str:
    '''Overwrites the topic/client heartbeat file with the latest record.'''
    path = heartbeat_path(directory, record)
    try:
        with open(path, "wb") as handle:
            handle.write(encode(record))
    except (OSError, ValueError) as exc:
        raise SinkError(f"failed writing heartbeat file {path}: {exc}", path) from exc
    return path
