import json


class FakeClock:
    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def heartbeat_payload(**fields) -> bytes:
    body = {"Type": "Heartbeat"}
    body.update(fields)
    return json.dumps(body).encode("utf-8")


class FailingSink:
    def __init__(self):
        self.calls = 0

    def write_batch(self, messages):
        from pubsub_archiver.utilities import SinkError
        self.calls += 1
        raise SinkError("disk full", "/nowhere/out.txt")

    def close(self):
        pass


class MemorySink:
    def __init__(self):
        self.batches = []

    def write_batch(self, messages):
        self.batches.append(list(messages))
        return f"batch-{len(self.batches)}"

    def close(self):
        pass
