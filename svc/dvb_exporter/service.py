from __future__ import annotations
import logging
import threading
import time
from typing import Dict, Iterator, List, Optional, TextIO

from .config import POLL_TIMEOUT_SECONDS
from .exposition import MetricRecord, render_record
from .frontend.interface import Failure, FrontendError, Outcome, Reading, Success, Unavailable
from .frontend.manager import DeviceRegistry, FrontendEntry
from .metrics import READING_METRICS, STATUS_METRICS

logger = logging.getLogger(__name__)


class _Poll:
    """One in-flight render of a single device, shared by the scrapes waiting on it."""

    def __init__(self, started: float) -> None:
        self.started = started
        self.done = threading.Event()
        self.chunk = ""


class ExpositionWriter:
    """
    Renders the metrics of every registered frontend, freshly polled on each call.

    Devices are polled in parallel and isolated from each other: a failing
    or hung frontend only loses its own metrics.

    Each device has at most one poll in flight, run on a daemon thread.
    Concurrent scrapes share that poll. A poll older than the timeout is
    treated as hung: scrapes skip the device until it returns, so a stuck
    driver holds one thread rather than one per scrape.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        poll_timeout: Optional[float] = POLL_TIMEOUT_SECONDS,
    ) -> None:
        if poll_timeout is not None and poll_timeout < 0:
            raise ValueError(f"poll timeout must not be negative, got {poll_timeout}")
        self.registry = registry
        # 0 or None waits for every device without a bound
        self.poll_timeout = poll_timeout or None
        self._lock = threading.Lock()
        self._inflight: Dict[str, _Poll] = {}

    # per device

    def collect_device(self, entry: FrontendEntry) -> List[MetricRecord]:
        labels = entry.identity.labels()
        try:
            status = entry.device.read_status()
        except FrontendError as e:
            logger.error(
                f"error getting fe status: adapter={entry.adapter_path} "
                f"frontend={entry.path} error={e}"
            )
            return []

        records = [metric.record(status, labels) for metric in STATUS_METRICS]

        outcomes: Dict[Reading, Outcome] = {}
        for metric in READING_METRICS:
            if metric.reading not in outcomes:
                outcomes[metric.reading] = self._query(entry, metric.reading)
            outcome = outcomes[metric.reading]
            if not isinstance(outcome, Success):
                continue
            try:
                record = metric.record(outcome.value, outcome.scale, labels)
            except ValueError as e:
                logger.debug(f"{entry.path}: cannot convert {metric.name} value {outcome.value}: {e}")
                continue
            if record is not None:
                records.append(record)
        return records

    def _query(self, entry: FrontendEntry, reading: Reading) -> Outcome:
        try:
            outcome = entry.device.read(reading)
        except Exception as e:
            outcome = Failure(e)

        if isinstance(outcome, Failure):
            logger.debug(
                f"error reading {reading.value}: adapter={entry.identity.adapter} "
                f"frontend={entry.identity.frontend} error={outcome.error}"
            )
        elif isinstance(outcome, Unavailable):
            logger.debug(f"{entry.path}: {reading.value} unavailable ({outcome.reason})")
        return outcome

    def _render_device(self, entry: FrontendEntry) -> str:
        try:
            return "".join(render_record(r) for r in self.collect_device(entry))
        except Exception:
            logger.exception(f"Polling {entry.path} failed")
            return ""

    def _start_poll(self, entry: FrontendEntry, now: float) -> Optional[_Poll]:
        """Return the device's in-flight poll, starting one if idle; None if it is hung."""
        with self._lock:
            poll = self._inflight.get(entry.path)
            if poll is not None:
                if self.poll_timeout is not None and now - poll.started >= self.poll_timeout:
                    return None
                return poll
            poll = _Poll(now)
            self._inflight[entry.path] = poll

        thread = threading.Thread(
            target=self._run_poll,
            args=(entry, poll),
            name=f"dvb-poll-{entry.identity.adapter}-{entry.identity.frontend}",
            daemon=True,
        )
        thread.start()
        return poll

    def _run_poll(self, entry: FrontendEntry, poll: _Poll) -> None:
        try:
            poll.chunk = self._render_device(entry)
        finally:
            with self._lock:
                if self._inflight.get(entry.path) is poll:
                    del self._inflight[entry.path]
            poll.done.set()

    # whole registry

    def iter_chunks(self) -> Iterator[str]:
        """Yield one rendered block per device, in registry order. Never raises."""
        entries = list(self.registry.frontends())
        if not entries:
            return

        start = time.monotonic()
        polls = [(entry, self._start_poll(entry, start)) for entry in entries]
        deadline = None if self.poll_timeout is None else start + self.poll_timeout
        for entry, poll in polls:
            device = f"adapter={entry.identity.adapter} frontend={entry.identity.frontend}"
            if poll is None:
                logger.error(f"Polling {device} timed out on an earlier scrape and is still running, skipping")
                continue
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not poll.done.wait(remaining):
                logger.error(f"Polling {device} timed out after {self.poll_timeout}s, skipping")
                continue
            if poll.chunk:
                yield poll.chunk

    def render(self) -> str:
        return "".join(self.iter_chunks())

    def write(self, stream: TextIO) -> None:
        for chunk in self.iter_chunks():
            stream.write(chunk)
