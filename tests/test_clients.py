import logging
import os
from pathlib import Path

import pytest

from pubsub_archiver.clients import ArchiveClient, ConsumerClient, ProducerClient
from pubsub_archiver.models import LocalBroker, Liveness, encode
from pubsub_archiver.schemas import (
    ArchiveClientConfig,
    ConsumerClientConfig,
    HeartbeatRecord,
    ProducerClientConfig,
)
from pubsub_archiver.utilities import ChannelError, utc_from_epoch

from helpers import heartbeat_payload

BROKER = {"Type": "ConsumerConfig", "Properties": {"url": "ws://localhost:8000/ws", "client.id": "c1"}}


@pytest.fixture(autouse=True)
def no_delays(monkeypatch):
    monkeypatch.setattr("pubsub_archiver.clients.base.RETRY_DELAY_S", 0)
    monkeypatch.setattr("pubsub_archiver.clients.producer.IDLE_DELAY_S", 0)


@pytest.fixture
def broker():
    return LocalBroker()


def make_consumer(tmp_path, clock, broker, **extra):
    body = {
        "Type": "ConsumerClient",
        "BrokerConfig": BROKER,
        "TopicList": ["quakes"],
        "FileExtension": "txt",
        "OutputDirectory": str(tmp_path / "out"),
        "PollTimeout": 10,
    }
    body.update(extra)
    config = ConsumerClientConfig.model_validate(body)
    return ConsumerClient(config, channel=broker.channel(["quakes"]), clock=clock)


def make_archiver(tmp_path, clock, broker, **extra):
    body = {
        "Type": "ArchiveClient",
        "BrokerConfig": BROKER,
        "TopicList": ["quakes"],
        "FileExtension": "txt",
        "OutputDirectory": str(tmp_path / "archive"),
        "PollTimeout": 0,
    }
    body.update(extra)
    config = ArchiveClientConfig.model_validate(body)
    return ArchiveClient(config, channel=broker.channel(["quakes"]), clock=clock)


def make_producer(tmp_path, clock, broker, **extra):
    (tmp_path / "in").mkdir(exist_ok=True)
    body = {
        "Type": "ProducerClient",
        "BrokerConfig": dict(BROKER, Type="ProducerConfig",
                             Properties={"url": "ws://localhost:8000/ws", "client.id": "p1"}),
        "Topic": "quakes",
        "FileExtension": ".json",
        "InputDirectory": str(tmp_path / "in"),
    }
    body.update(extra)
    config = ProducerClientConfig.model_validate(body)
    return ProducerClient(config, channel=broker.channel(), clock=clock)


def heartbeat_now(clock, client_id="p1") -> bytes:
    return encode(HeartbeatRecord(time=utc_from_epoch(clock.now), topic="quakes", client_id=client_id))


def output_lines(directory: Path):
    lines = []
    for name in sorted(os.listdir(directory)):
        lines.extend((directory / name).read_text().splitlines())
    return lines


# ------------ consumer ------------
@pytest.mark.asyncio
async def test_consumer_writes_count_batches_without_heartbeats(tmp_path, clock, broker):
    client = make_consumer(tmp_path, clock, broker, MessagesPerFile=3, HeartbeatInterval=30)
    publisher = broker.channel()
    for payload in [b"one", heartbeat_now(clock), b"two", b"three", b"four"]:
        await publisher.publish("quakes", payload)

    assert await client.cycle() is True
    files = os.listdir(tmp_path / "out")
    assert len(files) == 1
    assert (tmp_path / "out" / files[0]).read_text() == "one\ntwo\nthree\n"
    assert client.controller.pending == 1
    assert client.monitor.heartbeats_seen == 1

    assert await client.cycle() is False
    assert client.controller.pending == 1


@pytest.mark.asyncio
async def test_consumer_time_trigger(tmp_path, clock, broker):
    client = make_consumer(tmp_path, clock, broker, MessagesPerFile=100, TimePerFile=5)
    publisher = broker.channel()
    await publisher.publish("quakes", b"a")
    await publisher.publish("quakes", b"b")
    assert await client.cycle() is False

    clock.advance(6)
    assert await client.cycle() is True
    assert output_lines(tmp_path / "out") == ["a", "b"]


@pytest.mark.asyncio
async def test_consumer_logs_single_stale_alert(tmp_path, clock, broker, caplog):
    client = make_consumer(tmp_path, clock, broker, HeartbeatInterval=10)
    caplog.set_level(logging.WARNING)
    clock.advance(11)
    await client.cycle()
    assert client.liveness() is Liveness.STALE
    await client.cycle()
    stale = [r for r in caplog.records if "No heartbeat seen" in r.getMessage()]
    assert len(stale) == 1
    assert client.monitor.stale_alerts == 1
    assert client.liveness() is Liveness.HEALTHY


@pytest.mark.asyncio
async def test_consumer_drops_invalid_heartbeats(tmp_path, clock, broker, caplog):
    client = make_consumer(tmp_path, clock, broker)
    await broker.channel().publish("quakes", heartbeat_payload(Topic="quakes"))
    caplog.set_level(logging.WARNING)
    await client.cycle()
    assert client.controller.pending == 0
    assert client.monitor.heartbeats_invalid == 1
    assert any("invalid heartbeat" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_consumer_survives_poll_failures(tmp_path, clock, broker):
    client = make_consumer(tmp_path, clock, broker)

    class BrokenChannel:
        async def poll(self, timeout_ms):
            raise ChannelError("broker gone")

    client.channel = BrokenChannel()
    assert await client.cycle() is False
    assert client.transport_errors == 1
    assert client.stats()["transport_errors"] == 1


@pytest.mark.asyncio
async def test_consumer_persists_heartbeat_files(tmp_path, clock, broker):
    client = make_consumer(tmp_path, clock, broker, HeartbeatInterval=30,
                           HeartbeatDirectory=str(tmp_path / "hb"))
    await broker.channel().publish("quakes", heartbeat_now(clock))
    await client.cycle()
    assert os.listdir(tmp_path / "hb") == ["quakes_p1.heartbeat"]


@pytest.mark.asyncio
async def test_consumer_forwards_deeply_nested_payloads(tmp_path, clock, broker):
    client = make_consumer(tmp_path, clock, broker, MessagesPerFile=2)
    nested = b"[" * 200000 + b"]" * 200000
    publisher = broker.channel()
    await publisher.publish("quakes", nested)
    await publisher.publish("quakes", b"after")

    assert await client.cycle() is True
    lines = output_lines(tmp_path / "out")
    assert len(lines) == 2
    assert lines[0] == nested.decode()
    assert lines[1] == "after"


# ------------ archiver ------------
@pytest.mark.asyncio
async def test_archiver_appends_and_rotates_daily(tmp_path, clock, broker):
    client = make_archiver(tmp_path, clock, broker, FileName="quakes")
    publisher = broker.channel()

    await publisher.publish("quakes", b"first")
    await publisher.publish("quakes", heartbeat_now(clock))
    await publisher.publish("quakes", b"second\n")
    assert await client.cycle() == 2

    clock.advance(24 * 3600)
    await publisher.publish("quakes", b"third")
    assert await client.cycle() == 1
    await publisher.publish("quakes", b"fourth")
    assert await client.cycle() == 1
    await client.shutdown()

    archive = tmp_path / "archive"
    assert sorted(os.listdir(archive)) == ["2024-04-09_quakes.txt", "2024-04-10_quakes.txt"]
    assert (archive / "2024-04-09_quakes.txt").read_text() == "first\nsecond\nthird\n"
    assert (archive / "2024-04-10_quakes.txt").read_text() == "fourth\n"
    assert client.stats()["messages_written"] == 4


@pytest.mark.asyncio
async def test_archiver_empty_poll_writes_nothing(tmp_path, clock, broker):
    client = make_archiver(tmp_path, clock, broker)
    assert await client.cycle() == 0
    assert os.listdir(tmp_path / "archive") == []


# ------------ producer ------------
@pytest.mark.asyncio
async def test_producer_sends_one_file_per_cycle_and_deletes_it(tmp_path, clock, broker):
    consumer = broker.channel(["quakes"])
    client = make_producer(tmp_path, clock, broker)
    (tmp_path / "in" / "a.json").write_text('{"n": 1}\n{"n": 2}\n')
    (tmp_path / "in" / "b.json").write_text('{"n": 3}\n')
    (tmp_path / "in" / "skip.txt").write_text("ignored\n")

    assert await client.cycle() == 2
    assert [p for _, p in await consumer.poll(0)] == [b'{"n": 1}', b'{"n": 2}']
    assert sorted(os.listdir(tmp_path / "in")) == ["b.json", "skip.txt"]

    assert await client.cycle() == 1
    assert sorted(os.listdir(tmp_path / "in")) == ["skip.txt"]
    assert client.stats()["files_processed"] == 2


@pytest.mark.asyncio
async def test_producer_moves_files_to_archive(tmp_path, clock, broker):
    client = make_producer(tmp_path, clock, broker, ArchiveDirectory=str(tmp_path / "done"))
    (tmp_path / "in" / "a.json").write_text("x\n")
    await client.cycle()
    assert os.listdir(tmp_path / "done") == ["a.json"]


@pytest.mark.asyncio
async def test_producer_piggybacks_heartbeats(tmp_path, clock, broker):
    consumer = broker.channel(["quakes"])
    client = make_producer(tmp_path, clock, broker, HeartbeatInterval=-1)
    (tmp_path / "in" / "a.json").write_text("m1\nm2\n")
    await client.cycle()
    payloads = [p for _, p in await consumer.poll(0)]
    assert payloads[0::2] == [b"m1", b"m2"]
    assert all(b'"Type":"Heartbeat"' in p for p in payloads[1::2])
    assert client.emitter.heartbeats_sent == 2


@pytest.mark.asyncio
async def test_producer_idle_heartbeat_is_throttled(tmp_path, clock, broker):
    consumer = broker.channel(["quakes"])
    client = make_producer(tmp_path, clock, broker, HeartbeatInterval=30)
    await client.cycle()
    assert await consumer.poll(0) == []

    clock.advance(30)
    await client.cycle()
    await client.cycle()
    assert len(await consumer.poll(0)) == 1


@pytest.mark.asyncio
async def test_producer_keeps_going_when_publish_fails(tmp_path, clock, broker):
    client = make_producer(tmp_path, clock, broker, HeartbeatInterval=-1)
    (tmp_path / "in" / "a.json").write_text("m1\nm2\n")
    broker.close()
    assert await client.cycle() == 2
    stats = client.stats()
    assert stats["messages_failed"] == 2
    assert stats["heartbeats_failed"] == 2
    assert os.listdir(tmp_path / "in") == []


@pytest.mark.asyncio
async def test_producer_sends_undecodable_bytes_as_replacement(tmp_path, clock, broker):
    consumer = broker.channel(["quakes"])
    client = make_producer(tmp_path, clock, broker)
    (tmp_path / "in" / "a.json").write_bytes(b"ok\n\xff bad\n")

    assert await client.cycle() == 2
    assert [p for _, p in await consumer.poll(0)] == [b"ok", "\ufffd bad".encode("utf-8")]
    assert os.listdir(tmp_path / "in") == []


@pytest.mark.asyncio
async def test_producer_keeps_file_it_could_not_read(tmp_path, clock, broker, monkeypatch):
    consumer = broker.channel(["quakes"])
    client = make_producer(tmp_path, clock, broker)
    (tmp_path / "in" / "a.json").write_text("m1\n")

    def unreadable(*args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr("pubsub_archiver.clients.producer.open", unreadable, raising=False)
    assert await client.cycle() == 0
    assert os.listdir(tmp_path / "in") == ["a.json"]
    assert client.files_processed == 0

    monkeypatch.delattr("pubsub_archiver.clients.producer.open")
    assert await client.cycle() == 1
    assert await consumer.poll(0) == [("quakes", b"m1")]


# ------------ end to end ------------
@pytest.mark.asyncio
async def test_producer_to_consumer_round_trip(tmp_path, clock, broker):
    consumer = make_consumer(tmp_path, clock, broker, MessagesPerFile=2, HeartbeatInterval=10)
    producer = make_producer(tmp_path, clock, broker, HeartbeatInterval=5)
    (tmp_path / "in" / "a.json").write_text("e1\ne2\ne3\ne4\n")

    clock.advance(6)
    await producer.cycle()
    await consumer.cycle()
    clock.advance(0.01)
    await consumer.cycle()

    assert output_lines(tmp_path / "out") == ["e1", "e2", "e3", "e4"]
    assert consumer.monitor.heartbeats_seen == 1
    clock.advance(8)
    assert consumer.check_liveness() is Liveness.HEALTHY
