import threading
from pathlib import Path
from typing import Dict, Optional

import pytest

from dvb_exporter.frontend.interface import (
    FrontendError,
    Outcome,
    Reading,
    Status,
    Unavailable,
)
from dvb_exporter.frontend.manager import DeviceRegistry


class FakeFrontend:
    """In-memory stand-in for a DVB frontend handle."""

    def __init__(
        self,
        status: int = 0,
        readings: Optional[Dict[Reading, Outcome]] = None,
        status_error: Optional[Exception] = None,
        read_errors: Optional[Dict[Reading, Exception]] = None,
        block: Optional[threading.Event] = None,
    ) -> None:
        self.status = status
        self.readings = readings or {}
        self.status_error = status_error
        self.read_errors = read_errors or {}
        self.block = block
        self.calls: list = []
        self.status_calls = 0

    def read_status(self) -> int:
        self.status_calls += 1
        if self.block is not None:
            self.block.wait(5)
        if self.status_error is not None:
            raise self.status_error
        return self.status

    def read(self, reading: Reading) -> Outcome:
        self.calls.append(reading)
        if reading in self.read_errors:
            raise self.read_errors[reading]
        return self.readings.get(reading, Unavailable("not simulated"))


LOCKED = (
    Status.HAS_SIGNAL | Status.HAS_CARRIER | Status.HAS_VITERBI | Status.HAS_SYNC | Status.HAS_LOCK
)


@pytest.fixture
def dvb_tree(tmp_path):
    """Build a fake /dev/dvb tree: dvb_tree('adapter0/frontend0', ...) returns the base path."""
    base = tmp_path / "dvb"
    base.mkdir()

    def _make(*frontends: str) -> str:
        for rel in frontends:
            node = base / rel
            node.parent.mkdir(parents=True, exist_ok=True)
            node.touch()
        return str(base)

    return _make


@pytest.fixture
def registry_of(dvb_tree):
    """Build a registry from {'adapter0/frontend0': FakeFrontend(...), ...}."""

    def _make(devices: Dict[str, FakeFrontend]) -> DeviceRegistry:
        base = dvb_tree(*devices)
        by_path = {str(Path(base) / rel): dev for rel, dev in devices.items()}
        return DeviceRegistry.scan(base, opener=by_path.__getitem__)

    return _make


@pytest.fixture
def failing_status():
    return FrontendError("FE_READ_STATUS: Input/output error")
