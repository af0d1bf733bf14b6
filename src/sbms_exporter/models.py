"""Data models for SBMS telemetry readings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Reading:
    """One decoded SBMS telemetry record.

    Battery current is kept as a magnitude plus the ``charging`` flag;
    :attr:`battery_current` combines the two. Array and external-load
    voltages are not reported by the device, the battery voltage is used
    for their power figures.
    """

    timestamp: datetime
    state_of_charge: int
    cell_voltages: tuple[float, ...]
    internal_temperature: float
    external_temperature: float
    charging: bool
    battery_current_magnitude: float
    pv_currents: tuple[float, float]
    external_load_current: float
    adc_values: tuple[int, int, int]
    heat_values: tuple[int, int]
    status: int

    @property
    def battery_current(self) -> float:
        """Signed battery current (positive while charging)."""
        if self.charging:
            return self.battery_current_magnitude
        return -self.battery_current_magnitude

    @property
    def battery_voltage(self) -> float:
        """Sum of the cell voltages."""
        return sum(self.cell_voltages)

    @property
    def battery_power(self) -> float:
        return self.battery_current * self.battery_voltage

    @property
    def pv_powers(self) -> tuple[float, ...]:
        volts = self.battery_voltage
        return tuple(amps * volts for amps in self.pv_currents)

    @property
    def pv_current_combined(self) -> float:
        return sum(self.pv_currents)

    @property
    def pv_power_combined(self) -> float:
        return sum(self.pv_powers)

    @property
    def external_load_power(self) -> float:
        return self.external_load_current * self.battery_voltage
