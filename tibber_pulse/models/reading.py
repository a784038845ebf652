# tibber_pulse/models/reading.py
from dataclasses import dataclass
from datetime import datetime

from tibber_pulse.models.phase import PhaseMode


@dataclass(frozen=True)
class Reading:
    power_w: float
    energy_import_wh: float
    energy_export_wh: float
    observed_at: datetime


@dataclass(frozen=True)
class PowerData:
    phase_mode: PhaseMode
    phase: str
    power_w: float
    observed_at: datetime


@dataclass(frozen=True)
class EnergyData:
    phase_mode: PhaseMode
    phase: str
    import_wh: float
    export_wh: float
    observed_at: datetime
