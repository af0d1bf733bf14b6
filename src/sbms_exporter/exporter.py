"""SBMS exporter: connectivity gate and the record processing loop."""

from __future__ import annotations

import enum
import logging
from typing import BinaryIO, Iterable, NoReturn

from prometheus_client import CollectorRegistry, Gauge
from prometheus_client.registry import Collector

from .metrics import GaugeSink
from .protocol import LengthError, decode, format_record
from .reader import StreamClosed, read_records

logger = logging.getLogger(__name__)


class State(enum.Enum):
    DOWN = "down"
    UP = "up"


class ConnectivityGate:
    """Two-state machine owning registration of the extended metric set.

    The ``up`` gauge is registered on construction and stays registered
    for the life of the gate. ``collectors`` are registered on entering
    :attr:`State.UP` and unregistered on leaving it, so that a
    disconnected device exposes ``up`` alone instead of stale values.

    Args:
        registry: Registry the metrics are exposed from.
        collectors: The extended metric set.
        namespace: Prefix of the ``up`` gauge name.
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        collectors: Iterable[Collector],
        namespace: str = "sbms",
    ):
        self._registry = registry
        self._collectors = tuple(collectors)
        self._state = State.DOWN
        self.up = Gauge(
            "up", "Was the last scrape of sbms successful.",
            namespace=namespace, registry=None,
        )
        self._registry.register(self.up)
        self.up.set(0)

    @property
    def state(self) -> State:
        return self._state

    @property
    def registered(self) -> bool:
        """Whether the extended metric set is attached to the registry."""
        return self._state is State.UP

    def mark_up(self) -> bool:
        """Enter :attr:`State.UP`. Returns ``True`` on a transition."""
        if self._state is State.UP:
            return False
        for collector in self._collectors:
            self._registry.register(collector)
        self._state = State.UP
        self.up.set(1)
        logger.info("Device up, %d metrics registered", len(self._collectors))
        return True

    def mark_down(self) -> bool:
        """Enter :attr:`State.DOWN`. Returns ``True`` on a transition."""
        self.up.set(0)
        if self._state is State.DOWN:
            return False
        for collector in self._collectors:
            self._registry.unregister(collector)
        self._state = State.DOWN
        logger.info("Device down, metrics unregistered")
        return True


class Exporter:
    """Feeds SBMS records into Prometheus gauges.

    Example::

        registry = CollectorRegistry()
        exporter = Exporter(registry)
        with open("/dev/ttyUSB0", "rb") as port:
            exporter.export(port)

    Args:
        registry: Registry to expose metrics from. Its exposition may be
            scraped from another thread while :meth:`export` runs.
        namespace: Metric name prefix.
    """

    def __init__(self, registry: CollectorRegistry, namespace: str = "sbms"):
        self.sink = GaugeSink(namespace)
        self.gate = ConnectivityGate(registry, self.sink.collectors, namespace)

    @property
    def state(self) -> State:
        return self.gate.state

    @property
    def registered(self) -> bool:
        return self.gate.registered

    def handle_record(self, record: bytes) -> bool:
        """Decode one record and apply it.

        Returns:
            ``True`` if the record decoded and the gauges were updated.
        """
        try:
            reading = decode(record)
        except LengthError as e:
            logger.warning("Rejected record (%d bytes): %s", e.length, format_record(record))
            self.gate.mark_down()
            return False

        logger.debug("Reading at %s, SOC %d%%", reading.timestamp.isoformat(), reading.state_of_charge)
        # Values go in before registration; a concurrent scrape never
        # sees the freshly registered set with old values.
        self.sink.update(reading)
        self.gate.mark_up()
        return True

    def export(self, stream: BinaryIO) -> NoReturn:
        """Process records from ``stream`` until it ends.

        The gate is forced down before returning control to the caller.

        Raises:
            StreamClosed: ``stream`` reached end-of-input.
            StreamError: reading from ``stream`` failed.
        """
        try:
            for record in read_records(stream):
                self.handle_record(record)
        finally:
            self.gate.mark_down()
        raise StreamClosed()
