from datetime import timedelta

import pytest

from tibber_pulse.config import Config, parse_duration
from tibber_pulse.models.phase import PhaseAssignment, PhaseMode

CONF = """
[pulse]
url = http://192.168.1.50
node-id = 2
user-id = admin
password = 50%OFF
polling-interval = 500ms
jsml-timeout = 2s
power-phase-mode = TRI-PHASE
power-phase = L2
energy-phase-mode = mono-phase
energy-phase = l3
max-body-bytes = 4096

[output]
format = JSON

[logging]
console_level = DEBUG
debug_modules = tibber_pulse.services.sml_decoder, urllib3
structured_enabled = true
structured_path = ~/pulse/cycles.jsonl
"""


def _write(tmp_path, text):
    conf_path = tmp_path / "tibber_pulse.conf"
    conf_path.write_text(text)
    return str(conf_path)


def test_full_config(tmp_path):
    cfg = Config.load(_write(tmp_path, CONF))

    assert cfg.pulse.url == "http://192.168.1.50"
    assert cfg.pulse.node_id == "2"
    assert cfg.pulse.password == "50%OFF"
    assert cfg.pulse.polling_interval == timedelta(milliseconds=500)
    assert cfg.pulse.jsml_timeout == timedelta(seconds=2)
    assert cfg.pulse.max_body_bytes == 4096
    assert cfg.pulse.power_phase == PhaseAssignment(PhaseMode.TRI, "l2")
    assert cfg.pulse.energy_phase == PhaseAssignment(PhaseMode.MONO, "l3")
    assert cfg.output.format == "json"
    assert cfg.logging.console_level == "DEBUG"
    assert cfg.logging.debug_modules == ["tibber_pulse.services.sml_decoder", "urllib3"]
    assert cfg.logging.structured_enabled is True


def test_defaults(tmp_path):
    cfg = Config.load(_write(tmp_path, "[pulse]\nurl = http://pulse\n"))

    assert cfg.pulse.node_id == "1"
    assert cfg.pulse.user_id == "admin"
    assert cfg.pulse.polling_interval == timedelta(seconds=1)
    assert cfg.pulse.jsml_timeout == timedelta(seconds=5)
    assert cfg.pulse.power_phase == PhaseAssignment(PhaseMode.MONO, "l1")
    assert cfg.output.format == "human"
    assert cfg.logging.structured_enabled is False


def test_missing_pulse_section(tmp_path):
    with pytest.raises(ValueError, match=r"\[pulse\] section"):
        Config.load(_write(tmp_path, "[output]\nformat = human\n"))


def test_missing_url(tmp_path):
    with pytest.raises(ValueError, match="url is required"):
        Config.load(_write(tmp_path, "[pulse]\nnode-id = 1\n"))


def test_unknown_phase_mode(tmp_path):
    with pytest.raises(ValueError, match="unknown phase mode"):
        Config.load(_write(tmp_path, "[pulse]\nurl = http://pulse\npower-phase-mode = two-phase\n"))


def test_zero_polling_interval_rejected(tmp_path):
    with pytest.raises(ValueError, match="polling-interval"):
        Config.load(_write(tmp_path, "[pulse]\nurl = http://pulse\npolling-interval = 0s\n"))


def test_unknown_output_format(tmp_path):
    with pytest.raises(ValueError, match="unknown format"):
        Config.load(_write(tmp_path, "[pulse]\nurl = http://pulse\n[output]\nformat = xml\n"))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.load(str(tmp_path / "nope.conf"))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1000", timedelta(seconds=1)),
        ("250ms", timedelta(milliseconds=250)),
        ("5 seconds", timedelta(seconds=5)),
        ("2m", timedelta(minutes=2)),
        ("1.5h", timedelta(minutes=90)),
        ("1 day", timedelta(days=1)),
    ],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "fast", "10 fortnights", "-1s"])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)
