"""Prometheus gauges fed from decoded readings."""

from __future__ import annotations

from prometheus_client import Gauge

from .models import Reading
from .protocol import CELL_COUNT

PV_LABELS = ("1", "2")
THERMISTOR_LABELS = ("internal", "external")
ADC_LABELS = ("2", "3", "4")
HEAT_LABELS = ("1", "2")


def bool_as_float(b: bool) -> float:
    return 1.0 if b else 0.0


class GaugeSink:
    """Every SBMS gauge except ``up``.

    Gauges and their labelled children are created once, unregistered,
    and only have their values overwritten afterwards. Registration is
    left to the owner of :attr:`collectors`.

    Args:
        namespace: Metric name prefix.
    """

    def __init__(self, namespace: str = "sbms"):
        def gauge(subsystem: str, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
            return Gauge(
                name, doc, labels,
                namespace=namespace, subsystem=subsystem, registry=None,
            )

        self.updated = gauge(
            "updated", "unix",
            "The unix date the data was last updated "
            "(number of seconds elapsed since January 1, 1970 UTC).",
        )
        self.status = gauge("device", "status", "Device status number.")
        self.battery_charging = gauge(
            "battery", "charging", "Is the battery currently charging or discharging?",
        )
        self.battery_soc = gauge("battery", "soc", "Battery state of charge (%).")
        self.battery_volts = gauge("battery", "volts", "Battery voltage.")
        self.battery_amperes = gauge(
            "battery", "amperes",
            "Battery current (positive means charging, negative means discharging).",
        )
        self.battery_watts = gauge(
            "battery", "watts",
            "Battery power (positive means charging, negative means discharging).",
        )
        self.cell_volts = gauge("cell", "volts", "Battery cell voltage.", ("cell",))
        self.pv_volts = gauge("pv", "volts", "Array voltage.")
        self.pv_amperes = gauge("pv", "amperes", "Array current.", ("pv",))
        self.pv_watts = gauge("pv", "watts", "Array power.", ("pv",))
        self.pv_amperes_combined = gauge("pv", "amperes_combined", "Arrays total current.")
        self.pv_watts_combined = gauge("pv", "watts_combined", "Arrays total power.")
        self.thermistor_celsius = gauge(
            "thermistor", "celsius", "Device thermistor temperature.", ("sensor",),
        )
        self.adc_values = gauge("adc", "values", "Device ADC value.", ("adc",))
        self.heat_values = gauge("heat", "values", "Device heat value.", ("heat",))
        self.external_load_volts = gauge("external_load", "volts", "External load voltage.")
        self.external_load_amperes = gauge("external_load", "amperes", "External load current.")
        self.external_load_watts = gauge("external_load", "watts", "External load power.")

        # Children are created up front so that every series is present
        # as soon as the set is registered.
        self._cells = [self.cell_volts.labels(cell=str(i + 1)) for i in range(CELL_COUNT)]
        self._pv_amperes = [self.pv_amperes.labels(pv=p) for p in PV_LABELS]
        self._pv_watts = [self.pv_watts.labels(pv=p) for p in PV_LABELS]
        self._thermistors = [self.thermistor_celsius.labels(sensor=s) for s in THERMISTOR_LABELS]
        self._adcs = [self.adc_values.labels(adc=a) for a in ADC_LABELS]
        self._heats = [self.heat_values.labels(heat=h) for h in HEAT_LABELS]

    @property
    def collectors(self) -> tuple[Gauge, ...]:
        """All gauges, in registration order."""
        return (
            self.updated,
            self.status,
            self.battery_charging,
            self.battery_soc,
            self.battery_volts,
            self.battery_amperes,
            self.battery_watts,
            self.cell_volts,
            self.pv_volts,
            self.pv_amperes,
            self.pv_watts,
            self.pv_amperes_combined,
            self.pv_watts_combined,
            self.thermistor_celsius,
            self.adc_values,
            self.heat_values,
            self.external_load_volts,
            self.external_load_amperes,
            self.external_load_watts,
        )

    def update(self, reading: Reading) -> None:
        """Overwrite every gauge with the values of ``reading``."""
        volts = reading.battery_voltage

        self.updated.set(reading.timestamp.timestamp())
        self.status.set(reading.status)
        self.battery_charging.set(bool_as_float(reading.charging))
        self.battery_soc.set(reading.state_of_charge)
        self.battery_volts.set(volts)
        self.battery_amperes.set(reading.battery_current)
        self.battery_watts.set(reading.battery_power)

        for child, v in zip(self._cells, reading.cell_voltages):
            child.set(v)

        self.pv_volts.set(volts)
        for child, amps in zip(self._pv_amperes, reading.pv_currents):
            child.set(amps)
        for child, watts in zip(self._pv_watts, reading.pv_powers):
            child.set(watts)
        self.pv_amperes_combined.set(reading.pv_current_combined)
        self.pv_watts_combined.set(reading.pv_power_combined)

        temps = (reading.internal_temperature, reading.external_temperature)
        for child, t in zip(self._thermistors, temps):
            child.set(t)
        for child, v in zip(self._adcs, reading.adc_values):
            child.set(v)
        for child, v in zip(self._heats, reading.heat_values):
            child.set(v)

        self.external_load_volts.set(volts)
        self.external_load_amperes.set(reading.external_load_current)
        self.external_load_watts.set(reading.external_load_power)
