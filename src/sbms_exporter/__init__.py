"""sbms-exporter: Prometheus exporter for Electrodacus SBMS battery monitors.

Example::

    from prometheus_client import CollectorRegistry
    from sbms_exporter import Exporter, StreamError

    registry = CollectorRegistry()
    exporter = Exporter(registry)
    with open("/dev/ttyUSB0", "rb") as port:
        try:
            exporter.export(port)
        except StreamError as e:
            print(f"Stopped: {e}")
"""

__version__ = "0.1.0"

from .exporter import ConnectivityGate, Exporter, State
from .models import Reading
from .protocol import LengthError, SBMSError, decode
from .reader import StreamClosed, StreamError, read_records

__all__ = [
    "ConnectivityGate",
    "Exporter",
    "State",
    "Reading",
    "LengthError",
    "SBMSError",
    "decode",
    "StreamClosed",
    "StreamError",
    "read_records",
]
