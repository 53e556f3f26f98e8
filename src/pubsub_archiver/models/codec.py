"""Heartbeat wire codec.

``decode`` runs on every inbound message, so anything that is not a
heartbeat comes back as ``None`` instead of raising.
"""
import json
import logging
from typing import Any, Dict, Optional, Union

from ..schemas import HeartbeatRecord
from ..utilities import CLIENTID_KEY, HEARTBEAT_TYPE, TIME_KEY, TOPIC_KEY, TYPE_KEY, CodecError, parse_time

logger = logging.getLogger(__name__)


def encode(record: HeartbeatRecord) -> bytes:
    # absent fields are left out, never written as null
    return record.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


def parse_object(payload: Union[bytes, str]) -> Dict[str, Any]:
    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        body = json.loads(text)
    except (UnicodeDecodeError, ValueError, RecursionError) as exc:
        raise CodecError(str(exc)) from exc
    if not isinstance(body, dict):
        raise CodecError("payload is not a json object")
    return body


def _optional_str(body: Dict[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    if value is None:
        return None
    # lone surrogates from \ud800 style escapes are not valid text
    return str(value).encode("utf-8", "replace").decode("utf-8")


def decode(payload: Union[bytes, str]) -> Optional[HeartbeatRecord]:
    try:
        body = parse_object(payload)
    except CodecError:
        return None

    if TYPE_KEY not in body or str(body[TYPE_KEY]) != HEARTBEAT_TYPE:
        return None

    time_text = _optional_str(body, TIME_KEY)
    time = parse_time(time_text) if time_text is not None else None
    if time_text is not None and time is None:
        logger.debug("Unparseable heartbeat time: %s", time_text)

    return HeartbeatRecord(
        time=time,
        topic=_optional_str(body, TOPIC_KEY),
        client_id=_optional_str(body, CLIENTID_KEY),
    )
