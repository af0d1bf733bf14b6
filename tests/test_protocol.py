"""Tests for the sbms_exporter protocol module.

Uses a record captured from an SBMS0 to validate base-91 unpacking and
the frame layout.
"""

import dataclasses
from datetime import datetime, timezone

import pytest

from sbms_exporter.models import Reading
from sbms_exporter.protocol import (
    CHARGING_OFFSET,
    FRAME_LAYOUT,
    RECORD_LENGTH,
    LengthError,
    decode,
    decode_fields,
    format_record,
    unpack_base91,
)

# Real captured record from an SBMS0
SAMPLE_RECORD = b"3';2LD$,I)I*I+I+H}I%I+I**h##+#)P####->##################%N("


def pack(value: int, width: int) -> bytes:
    """Encode ``value`` as ``width`` base-91 digits."""
    digits = []
    for _ in range(width):
        value, d = divmod(value, 91)
        digits.append(d + 35)
    return bytes(reversed(digits))


def with_field(name: str, value: int) -> bytes:
    """SAMPLE_RECORD with one layout field replaced by a raw value."""
    f = next(f for f in FRAME_LAYOUT if f.name == name)
    return SAMPLE_RECORD[:f.offset] + pack(value, f.width) + SAMPLE_RECORD[f.offset + f.width:]


class TestUnpackBase91:
    def test_zero_digit(self):
        assert unpack_base91(b"#", 0, 1) == 0

    def test_single_digit(self):
        assert unpack_base91(b"3", 0, 1) == 16

    def test_most_significant_first(self):
        # '$' = 1, ',' = 9 -> 1 * 91 + 9
        assert unpack_base91(b"$,", 0, 2) == 100

    def test_three_digits(self):
        assert unpack_base91(b"%N(", 0, 3) == 20480

    def test_offset(self):
        assert unpack_base91(SAMPLE_RECORD, 29, 3) == 591

    def test_max_three_digits(self):
        assert unpack_base91(b"}}}", 0, 3) == 91 ** 3 - 1


class TestFrameLayout:
    def test_fields_fill_record(self):
        """Every byte except the charging sign belongs to exactly one field."""
        covered = [CHARGING_OFFSET]
        for f in FRAME_LAYOUT:
            covered.extend(range(f.offset, f.offset + f.width))
        assert sorted(covered) == list(range(RECORD_LENGTH))

    def test_reading_fields(self):
        assert [f.name for f in dataclasses.fields(Reading)] == [
            "timestamp",
            "state_of_charge",
            "cell_voltages",
            "internal_temperature",
            "external_temperature",
            "charging",
            "battery_current_magnitude",
            "pv_currents",
            "external_load_current",
            "adc_values",
            "heat_values",
            "status",
        ]

    def test_reading_value_count(self):
        """One timestamp plus 22 scalar values per record."""
        r = decode(SAMPLE_RECORD)
        values = [r.timestamp, r.state_of_charge, *r.cell_voltages,
                  r.internal_temperature, r.external_temperature, r.charging,
                  r.battery_current, *r.pv_currents, r.external_load_current,
                  *r.adc_values, *r.heat_values, r.status]
        assert len(values) == 23

    def test_names_unique(self):
        names = [f.name for f in FRAME_LAYOUT]
        assert len(names) == len(set(names))


class TestDecodeFields:
    def test_sample(self):
        f = decode_fields(SAMPLE_RECORD)
        assert f["year"] == 2016
        assert f["month"] == 4
        assert f["state_of_charge"] == 100
        assert f["cell5"] == 3.457
        assert f["battery_current"] == 0.591
        assert f["status"] == 20480

    def test_cell_voltage(self):
        assert decode_fields(with_field("cell3", 3300))["cell3"] == 3.3

    def test_temperature_below_zero(self):
        assert decode_fields(with_field("internal_temperature", 400))["internal_temperature"] == -5.0

    def test_adc(self):
        assert decode_fields(with_field("adc3", 1234))["adc3"] == 1234

    def test_heat(self):
        assert decode_fields(with_field("heat2", 77))["heat2"] == 77

    def test_external_load_current(self):
        assert decode_fields(with_field("external_load_current", 12500))["external_load_current"] == 12.5

    def test_wrong_length(self):
        with pytest.raises(LengthError):
            decode_fields(SAMPLE_RECORD[:-1])


class TestDecode:
    def test_real_data(self):
        r = decode(SAMPLE_RECORD)

        assert r.timestamp == datetime(2016, 4, 24, 15, 41, 33, tzinfo=timezone.utc)
        assert r.state_of_charge == 100
        assert r.cell_voltages == (3.464, 3.465, 3.466, 3.466, 3.457, 3.460, 3.466, 3.465)
        assert r.internal_temperature == 25.6
        assert r.external_temperature == -45.0
        assert r.charging is True
        assert r.battery_current == 0.591
        assert r.pv_currents == (0.0, 0.937)
        assert r.external_load_current == 0.0
        assert r.adc_values == (0, 0, 0)
        assert r.heat_values == (0, 0)
        assert r.status == 20480

    def test_derived(self):
        r = decode(SAMPLE_RECORD)
        assert r.battery_voltage == pytest.approx(27.709)
        assert r.battery_power == pytest.approx(0.591 * 27.709)
        assert r.pv_powers == pytest.approx((0.0, 0.937 * 27.709))
        assert r.pv_current_combined == pytest.approx(0.937)
        assert r.pv_power_combined == pytest.approx(0.937 * 27.709)
        assert r.external_load_power == 0.0

    def test_discharging(self):
        """Any sign byte other than '+' means discharging."""
        for sign in b"- #x":
            record = SAMPLE_RECORD[:CHARGING_OFFSET] + bytes([sign]) + SAMPLE_RECORD[CHARGING_OFFSET + 1:]
            r = decode(record)
            assert r.charging is False
            assert r.battery_current_magnitude == 0.591
            assert r.battery_current == -0.591
            assert r.battery_power < 0

    def test_timestamp_carries_over(self):
        r = decode(with_field("month", 13))
        assert r.timestamp == datetime(2017, 1, 24, 15, 41, 33, tzinfo=timezone.utc)

    def test_timestamp_second_overflow(self):
        r = decode(with_field("second", 60))
        assert r.timestamp == datetime(2016, 4, 24, 15, 42, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("record", [
        b"",
        b"\x00" * 60,
        SAMPLE_RECORD[:-1],
        SAMPLE_RECORD + b"#",
        b" " + SAMPLE_RECORD,
    ])
    def test_wrong_length(self, record):
        with pytest.raises(LengthError) as exc:
            decode(record)
        assert exc.value.length == len(record)

    def test_length_error_is_value_error(self):
        with pytest.raises(ValueError):
            decode(b"short")


class TestFormatRecord:
    def test_printable(self):
        assert format_record(b"abc") == "abc"

    def test_escapes(self):
        assert format_record(b"a\x00\xff") == "a\\x00\\xff"

    def test_truncates(self):
        assert format_record(b"#" * 100, limit=10) == "#" * 10 + "..."
