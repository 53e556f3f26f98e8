import uuid
from datetime import datetime, timezone
from typing import Optional, Union


def utc_from_epoch(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


def format_time(value: datetime) -> str:
    """ISO 8601, UTC, millisecond precision: 2024-03-01T12:00:00.000Z"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + "%03dZ" % (value.microsecond // 1000)


def parse_time(text: str) -> Optional[datetime]:
    # naive timestamps are taken as UTC, anything unparseable is absent
    if not isinstance(text, str) or not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_date_string(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d")


def ensure_newline(message: str) -> str:
    if message.endswith("\n"):
        return message
    return message + "\n"


def as_text(payload: Union[bytes, str]) -> str:
    if isinstance(payload, bytes):
        return payload.decode("utf-8", errors="replace")
    return payload


def new_request_id() -> str:
    return str(uuid.uuid4())


# Client -> broker frames are built as dicts
def make_subscribe(topic: str, client_id: str, request_id: Optional[str] = None, last_n: int = 0):
    return {"type": "subscribe", "topic": topic, "client_id": client_id, "last_n": last_n,
            "request_id": request_id or new_request_id()}

def make_unsubscribe(topic: str, client_id: str, request_id: Optional[str] = None):
    return {"type": "unsubscribe", "topic": topic, "client_id": client_id,
            "request_id": request_id or new_request_id()}

def make_publish(topic: str, payload: str, request_id: Optional[str] = None):
    return {"type": "publish", "topic": topic,
            "message": {"id": str(uuid.uuid4()), "payload": payload},
            "request_id": request_id or new_request_id()}

