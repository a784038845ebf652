# tibber_pulse/services/reading_extractor.py

from __future__ import annotations
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from tibber_pulse.models.reading import Reading
from tibber_pulse.models.sml import DecodedEntry


ENERGY_IMPORT_OBIS = bytes.fromhex("0100010800FF")   # 1-0:1.8.0, Wh
ENERGY_EXPORT_OBIS = bytes.fromhex("0100020800FF")   # 1-0:2.8.0, Wh
ACTIVE_POWER_OBIS = bytes.fromhex("0100100700FF")    # 1-0:16.7.0, W

# OBIS identifier -> Reading field
READING_FIELDS: Dict[bytes, str] = {
    ENERGY_IMPORT_OBIS: "energy_import_wh",
    ENERGY_EXPORT_OBIS: "energy_export_wh",
    ACTIVE_POWER_OBIS: "power_w",
}


# ============================================================================
# Scale helpers
# ============================================================================

def apply_scale(value: int, scaler: Optional[int]) -> float:
    """Return value * 10^scaler; negative scalers divide by an exact power of ten."""
    exponent = int(scaler or 0)
    if exponent >= 0:
        return float(value * (10 ** exponent))
    return value / (10 ** -exponent)


def format_obis(obj_name: bytes) -> str:
    """Hex rendering, e.g. '01 00 10 07 00 FF'."""
    return " ".join(f"{b:02X}" for b in obj_name)


def obis_code(obj_name: bytes) -> str:
    """Reduced ID rendering, e.g. '1-0:16.7.0*255'."""
    if len(obj_name) != 6:
        return format_obis(obj_name)
    a, b, c, d, e, f = obj_name
    return f"{a}-{b}:{c}.{d}.{e}*{f}"


def scaled_value(entry: DecodedEntry) -> float:
    value = entry.value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"non-numeric value {value!r} for OBIS code {format_obis(entry.obj_name)}")
    return apply_scale(value, entry.scaler)


# ============================================================================
# Extraction
# ============================================================================

def extract_reading(entries: Iterable[DecodedEntry], observed_at: Optional[datetime] = None) -> Reading:
    """
    Pick energy import, energy export and active power out of a list response.

    The first entry carrying an identifier wins; identifiers that do not occur
    read as 0.0.
    """
    values = {field: 0.0 for field in READING_FIELDS.values()}
    found: set[str] = set()

    for entry in entries:
        field = READING_FIELDS.get(entry.obj_name)
        if field is None or field in found:
            continue
        found.add(field)
        values[field] = scaled_value(entry)

    return Reading(
        observed_at=observed_at or datetime.now(timezone.utc),
        **values,
    )
