# tibber_pulse/models/phase.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PhaseMode(Enum):
    MONO = "mono-phase"
    TRI = "tri-phase"

    @classmethod
    def parse(cls, value: str) -> PhaseMode:
        """Resolve a configured phase mode, ignoring case."""
        normalized = (value or "").strip().lower()
        for mode in cls:
            if mode.value == normalized:
                return mode
        raise ValueError(f"unknown phase mode: {value}")


@dataclass(frozen=True)
class PhaseAssignment:
    mode: PhaseMode
    phase: str
