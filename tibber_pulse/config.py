# tibber_pulse/config.py
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
import configparser
import re

from tibber_pulse.models.phase import PhaseAssignment, PhaseMode


@dataclass
class PulseConfig:
    url: str
    node_id: str = "1"
    user_id: str = "admin"
    password: str = ""
    polling_interval: timedelta = timedelta(seconds=1)
    jsml_timeout: timedelta = timedelta(seconds=5)
    request_timeout: timedelta = timedelta(seconds=10)
    body_timeout: timedelta = timedelta(seconds=5)
    max_body_bytes: int = 64 * 1024
    power_phase: PhaseAssignment = field(
        default_factory=lambda: PhaseAssignment(PhaseMode.MONO, "l1")
    )
    energy_phase: PhaseAssignment = field(
        default_factory=lambda: PhaseAssignment(PhaseMode.MONO, "l1")
    )


@dataclass
class OutputConfig:
    format: str = "human"


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None


@dataclass
class AppConfig:
    pulse: PulseConfig
    output: OutputConfig
    logging: LoggingConfig


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$")

_DURATION_UNITS = {
    "": "milliseconds",
    "ms": "milliseconds",
    "milli": "milliseconds",
    "millis": "milliseconds",
    "millisecond": "milliseconds",
    "milliseconds": "milliseconds",
    "s": "seconds",
    "second": "seconds",
    "seconds": "seconds",
    "m": "minutes",
    "minute": "minutes",
    "minutes": "minutes",
    "h": "hours",
    "hour": "hours",
    "hours": "hours",
    "d": "days",
    "day": "days",
    "days": "days",
}


def parse_duration(raw: str) -> timedelta:
    """Parse '500ms', '1s', '5 seconds', '2m'...; a bare number means milliseconds."""
    match = _DURATION_RE.match(raw or "")
    if not match:
        raise ValueError(f"Invalid duration: {raw!r}")
    amount, unit = match.groups()
    key = _DURATION_UNITS.get(unit.lower())
    if key is None:
        raise ValueError(f"Invalid duration unit in {raw!r}")
    return timedelta(**{key: float(amount)})


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        # no interpolation: bridge passwords may contain '%'
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",), interpolation=None)
        read = self.parser.read(self.path)
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        cfg = cls(path)

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _phase(sec, mode_key: str, phase_key: str) -> PhaseAssignment:
            mode = PhaseMode.parse(sec.get(mode_key, PhaseMode.MONO.value))
            phase = sec.get(phase_key, "l1").strip().lower()
            if not phase:
                raise ValueError(f"[pulse] {phase_key} must not be empty")
            return PhaseAssignment(mode=mode, phase=phase)

        # --- Pulse ---
        if "pulse" not in p:
            raise ValueError("[pulse] section missing from config")

        pulse_sec = p["pulse"]
        url = pulse_sec.get("url", "").strip()
        if not url:
            raise ValueError("[pulse] url is required")

        pulse_kwargs = {"url": url}
        if "node-id" in pulse_sec:
            pulse_kwargs["node_id"] = pulse_sec["node-id"].strip()
        if "user-id" in pulse_sec:
            pulse_kwargs["user_id"] = pulse_sec["user-id"].strip()
        if "password" in pulse_sec:
            pulse_kwargs["password"] = pulse_sec["password"].strip()
        if "polling-interval" in pulse_sec:
            pulse_kwargs["polling_interval"] = parse_duration(pulse_sec["polling-interval"])
        if "jsml-timeout" in pulse_sec:
            pulse_kwargs["jsml_timeout"] = parse_duration(pulse_sec["jsml-timeout"])
        if "request-timeout" in pulse_sec:
            pulse_kwargs["request_timeout"] = parse_duration(pulse_sec["request-timeout"])
        if "body-timeout" in pulse_sec:
            pulse_kwargs["body_timeout"] = parse_duration(pulse_sec["body-timeout"])
        if "max-body-bytes" in pulse_sec:
            pulse_kwargs["max_body_bytes"] = int(pulse_sec["max-body-bytes"])

        pulse_kwargs["power_phase"] = _phase(pulse_sec, "power-phase-mode", "power-phase")
        pulse_kwargs["energy_phase"] = _phase(pulse_sec, "energy-phase-mode", "energy-phase")

        pulse = PulseConfig(**pulse_kwargs)
        if pulse.polling_interval <= timedelta(0):
            raise ValueError("[pulse] polling-interval must be positive")
        if pulse.max_body_bytes <= 0:
            raise ValueError("[pulse] max-body-bytes must be positive")

        # --- Output ---
        output_kwargs = {}
        if "output" in p and "format" in p["output"]:
            fmt = p["output"]["format"].strip().lower()
            if fmt not in ("human", "json"):
                raise ValueError(f"[output] unknown format: {fmt}")
            output_kwargs["format"] = fmt
        output_cfg = OutputConfig(**output_kwargs)

        # --- Logging ---
        logging_kwargs = {}
        if "logging" in p:
            logging_sec = p["logging"]
            if "console_level" in logging_sec:
                logging_kwargs["console_level"] = logging_sec["console_level"]
            if "console_quiet" in logging_sec:
                logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
            if "debug_modules" in logging_sec:
                raw = logging_sec["debug_modules"]
                logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
            if "structured_enabled" in logging_sec:
                logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
            if "structured_path" in logging_sec:
                logging_kwargs["structured_path"] = logging_sec["structured_path"]
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            pulse=pulse,
            output=output_cfg,
            logging=logging_cfg,
        )
