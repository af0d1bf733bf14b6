"""SBMS telemetry protocol: base-91 unpacking and frame decoding.

The SBMS prints one record per line on its serial port. Every record is
exactly 59 printable bytes; each byte is one base-91 digit offset by 35
(``'#'`` is zero) and numbers are stored most significant digit first.

This module has no external dependencies and can be used standalone for
offline analysis of captured records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .models import Reading

# --- Protocol Constants ---
RECORD_LENGTH = 59
DIGIT_OFFSET = 35
DIGIT_BASE = 91
CHARGING_OFFSET = 28
CHARGING_MARK = ord("+")

CELL_COUNT = 8
TEMPERATURE_BIAS = 450


class SBMSError(Exception):
    """Base class for sbms-exporter errors."""


class LengthError(SBMSError, ValueError):
    """Raised when a record is not exactly :data:`RECORD_LENGTH` bytes."""

    def __init__(self, length: int):
        super().__init__(
            f"invalid data length: got {length} bytes, want {RECORD_LENGTH}"
        )
        self.length = length


def _year(raw: int) -> int:
    return raw + 2000


def _milli(raw: int) -> float:
    return raw / 1000.0


def _temperature(raw: int) -> float:
    return (raw - TEMPERATURE_BIAS) / 10.0


@dataclass(frozen=True)
class Field:
    """A fixed-offset, fixed-width field of a record."""

    name: str
    offset: int
    width: int
    transform: Callable[[int], Any] = int


FRAME_LAYOUT: tuple[Field, ...] = (
    Field("year", 0, 1, _year),
    Field("month", 1, 1),
    Field("day", 2, 1),
    Field("hour", 3, 1),
    Field("minute", 4, 1),
    Field("second", 5, 1),
    Field("state_of_charge", 6, 2),
    *(Field(f"cell{i + 1}", 8 + 2 * i, 2, _milli) for i in range(CELL_COUNT)),
    Field("internal_temperature", 24, 2, _temperature),
    Field("external_temperature", 26, 2, _temperature),
    # offset 28 is the charging sign, see CHARGING_OFFSET
    Field("battery_current", 29, 3, _milli),
    Field("pv1_current", 32, 3, _milli),
    Field("pv2_current", 35, 3, _milli),
    Field("external_load_current", 38, 3, _milli),
    Field("adc2", 41, 3),
    Field("adc3", 44, 3),
    Field("adc4", 47, 3),
    Field("heat1", 50, 3),
    Field("heat2", 53, 3),
    Field("status", 56, 3),
)


def unpack_base91(data: bytes, offset: int, width: int) -> int:
    """Unpack ``width`` base-91 digits starting at ``offset``.

    The first byte is the most significant digit.
    """
    value = 0
    for b in data[offset:offset + width]:
        value = value * DIGIT_BASE + (b - DIGIT_OFFSET)
    return value


def decode_fields(record: bytes) -> dict[str, Any]:
    """Decode every :data:`FRAME_LAYOUT` field of ``record``.

    Raises:
        LengthError: ``record`` is not :data:`RECORD_LENGTH` bytes long.
    """
    if len(record) != RECORD_LENGTH:
        raise LengthError(len(record))
    return {
        f.name: f.transform(unpack_base91(record, f.offset, f.width))
        for f in FRAME_LAYOUT
    }


def _timestamp(f: dict[str, Any]) -> datetime:
    # Out of range components carry over: month 13 is January of the next
    # year, second 60 is the next minute.
    years, month = divmod(f["month"] - 1, 12)
    start = datetime(f["year"] + years, month + 1, 1, tzinfo=timezone.utc)
    return start + timedelta(
        days=f["day"] - 1,
        hours=f["hour"],
        minutes=f["minute"],
        seconds=f["second"],
    )


def decode(record: bytes) -> Reading:
    """Decode one record into a :class:`Reading`.

    Only the record length is checked; decoded magnitudes are trusted.

    Raises:
        LengthError: ``record`` is not :data:`RECORD_LENGTH` bytes long.
    """
    f = decode_fields(record)
    return Reading(
        timestamp=_timestamp(f),
        state_of_charge=f["state_of_charge"],
        cell_voltages=tuple(f[f"cell{i + 1}"] for i in range(CELL_COUNT)),
        internal_temperature=f["internal_temperature"],
        external_temperature=f["external_temperature"],
        charging=record[CHARGING_OFFSET] == CHARGING_MARK,
        battery_current_magnitude=f["battery_current"],
        pv_currents=(f["pv1_current"], f["pv2_current"]),
        external_load_current=f["external_load_current"],
        adc_values=(f["adc2"], f["adc3"], f["adc4"]),
        heat_values=(f["heat1"], f["heat2"]),
        status=f["status"],
    )


def format_record(record: bytes, limit: int = 80) -> str:
    """Render a record for log output, escaping non-printable bytes."""
    text = "".join(
        chr(b) if 32 <= b < 127 else f"\\x{b:02x}" for b in record[:limit]
    )
    if len(record) > limit:
        text += "..."
    return text
