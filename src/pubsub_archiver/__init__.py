"""Batches pub/sub traffic into files and watches the channel with heartbeats."""

__version__ = "0.3.0"
