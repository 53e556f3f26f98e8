import json
from datetime import datetime, timezone

import pytest

from helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    # 2024-04-09 12:00:00 UTC, day-of-year 100
    return FakeClock(datetime(2024, 4, 9, 12, 0, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def broker_config():
    return {"Type": "ConsumerConfig", "Properties": {"url": "ws://localhost:8000/ws", "client.id": "c1"}}


@pytest.fixture
def write_config(tmp_path):
    def _write(body: dict, name: str = "config.json") -> str:
        path = tmp_path / name
        path.write_text(json.dumps(body))
        return str(path)
    return _write
