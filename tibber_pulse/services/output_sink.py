# tibber_pulse/services/output_sink.py

from __future__ import annotations

import json
from typing import Callable, Iterable, Optional, Protocol

from tibber_pulse.models.reading import EnergyData, PowerData, Reading
from tibber_pulse.models.sml import DecodedEntry
from tibber_pulse.services.reading_extractor import READING_FIELDS, obis_code


class OutputSink(Protocol):
    """Receiver of normalized readings (the emulated output device)."""

    def notify_power_data(self, data: PowerData) -> None:
        ...

    def notify_energy_data(self, data: EnergyData) -> None:
        ...


def _power_to_dict(data: PowerData) -> dict:
    return {
        "type": "power",
        "timestamp": data.observed_at.isoformat(),
        "phase_mode": data.phase_mode.value,
        "phase": data.phase,
        "power_w": data.power_w,
    }


def _energy_to_dict(data: EnergyData) -> dict:
    return {
        "type": "energy",
        "timestamp": data.observed_at.isoformat(),
        "phase_mode": data.phase_mode.value,
        "phase": data.phase,
        "import_wh": data.import_wh,
        "export_wh": data.export_wh,
    }


class ConsoleSink:
    """Prints every event, human-readable or as one JSON object per line."""

    def __init__(self, as_json: bool = False, emit: Callable[[str], None] = print):
        self.as_json = as_json
        self.emit = emit

    def notify_power_data(self, data: PowerData) -> None:
        if self.as_json:
            self.emit(json.dumps(_power_to_dict(data)))
            return
        self.emit(
            f"[power] {data.phase_mode.value}/{data.phase} P={data.power_w:.1f}W"
        )

    def notify_energy_data(self, data: EnergyData) -> None:
        if self.as_json:
            self.emit(json.dumps(_energy_to_dict(data)))
            return
        self.emit(
            f"[energy] {data.phase_mode.value}/{data.phase} "
            f"import={data.import_wh / 1000.0:.3f}kWh  export={data.export_wh / 1000.0:.3f}kWh"
        )


# ----------------------------------------------------------------------
# One-shot output for the `once` and `decode` commands
# ----------------------------------------------------------------------

def _entry_value(entry: DecodedEntry):
    if isinstance(entry.value, bytes):
        return entry.value.hex()
    return entry.value


def emit_json(reading: Optional[Reading], entries: Iterable[DecodedEntry] = ()) -> None:
    payload: dict = {"reading": None}
    if reading is not None:
        payload["reading"] = {
            "timestamp": reading.observed_at.isoformat(),
            "power_w": reading.power_w,
            "energy_import_wh": reading.energy_import_wh,
            "energy_export_wh": reading.energy_export_wh,
        }
    payload["entries"] = [
        {
            "obis": obis_code(entry.obj_name),
            "unit": entry.unit,
            "scaler": entry.scaler,
            "value": _entry_value(entry),
        }
        for entry in entries
    ]
    print(json.dumps(payload, indent=2))


def emit_human(reading: Optional[Reading], entries: Iterable[DecodedEntry] = ()) -> None:
    if reading is None:
        print("No list response in SML frame")
        return

    print(
        f"P={reading.power_w:.1f}W  "
        f"import={reading.energy_import_wh:.1f}Wh  "
        f"export={reading.energy_export_wh:.1f}Wh"
    )
    for entry in entries:
        marker = "*" if entry.obj_name in READING_FIELDS else " "
        print(
            f" {marker} {obis_code(entry.obj_name):<16} value={_entry_value(entry)} "
            f"scaler={entry.scaler} unit={entry.unit}"
        )
