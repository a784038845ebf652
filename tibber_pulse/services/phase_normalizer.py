# tibber_pulse/services/phase_normalizer.py

from __future__ import annotations

from tibber_pulse.models.phase import PhaseAssignment
from tibber_pulse.models.reading import EnergyData, PowerData, Reading


def normalize_power(reading: Reading, assignment: PhaseAssignment) -> PowerData:
    """
    Tag the total active power with the configured phase.

    A mono-phase assignment puts the whole value on the named phase; a
    tri-phase assignment only tells the sink which phase set the value stands
    for. The value itself is never split.
    """
    return PowerData(
        phase_mode=assignment.mode,
        phase=assignment.phase,
        power_w=reading.power_w,
        observed_at=reading.observed_at,
    )


def normalize_energy(reading: Reading, assignment: PhaseAssignment) -> EnergyData:
    return EnergyData(
        phase_mode=assignment.mode,
        phase=assignment.phase,
        import_wh=reading.energy_import_wh,
        export_wh=reading.energy_export_wh,
        observed_at=reading.observed_at,
    )
