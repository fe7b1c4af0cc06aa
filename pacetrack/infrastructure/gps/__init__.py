"""GPS infrastructure - gpsd client, mock walker and CSV replay."""

from .gpsd_client import AsyncGPSClient, MockGPSClient
from .replay import CsvReplaySource, ReplayClock, write_positions

__all__ = [
    "AsyncGPSClient",
    "CsvReplaySource",
    "MockGPSClient",
    "ReplayClock",
    "write_positions",
]
