"""
Tests for YAML configuration loading.
"""

from pathlib import Path

import pytest

from slotengine.config import AppConfig
from slotengine.domain.models import SchedulingMode

CONFIG_YAML = """
defaults:
  step_minutes: 30
hosts:
  - id: alice
    timezone: Europe/Berlin
    weekly:
      Monday: "09:00-17:00"
      fri: "09:00-12:30"
  - id: bob
    timezone: America/New_York
appointment_types:
  - id: demo
    duration_minutes: 45
    buffer_after_minutes: 15
    mode: round_robin
    hosts: [alice, bob]
data_file: state/bookings.json
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_full_config(tmp_path):
    config = AppConfig.load_from_yaml(_write(tmp_path, CONFIG_YAML))

    assert config.defaults.step_minutes == 30
    assert config.defaults.max_slots == 48
    assert config.data_file == tmp_path / "state" / "bookings.json"

    alice = config.availabilities()["alice"]
    assert alice.time_zone == "Europe/Berlin"
    assert alice.rule_for(1).start_minute == 540
    assert alice.rule_for(5).end_minute == 750
    assert not alice.rule_for(2).enabled

    # Hosts without a weekly section get Monday to Friday, 09:00-17:00.
    bob = config.availabilities()["bob"]
    assert bob.rule_for(3).enabled
    assert not bob.rule_for(0).enabled

    [demo] = config.domain_appointment_types()
    assert demo.type_id == "demo"
    assert demo.scheduling_mode is SchedulingMode.ROUND_ROBIN
    assert demo.team_host_ids == ("alice", "bob")
    assert demo.rotation_cursor == 0


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load_from_yaml(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path):
    with pytest.raises(ValueError, match="Invalid YAML"):
        AppConfig.load_from_yaml(_write(tmp_path, "hosts: [unclosed"))


def test_unknown_host_reference(tmp_path):
    text = CONFIG_YAML.replace("hosts: [alice, bob]", "hosts: [alice, zoe]")

    with pytest.raises(ValueError, match="unknown hosts"):
        AppConfig.load_from_yaml(_write(tmp_path, text))


def test_single_mode_with_team_is_rejected():
    with pytest.raises(ValueError, match="single-host"):
        AppConfig(
            hosts=[{"id": "a"}, {"id": "b"}],
            appointment_types=[{"id": "x", "mode": "single", "hosts": ["a", "b"]}],
        )


@pytest.mark.parametrize(
    "host",
    [
        {"id": "a", "timezone": "Atlantis/Capital"},
        {"id": "a", "weekly": {"funday": "09:00-17:00"}},
        {"id": "a", "weekly": {"mon": "9 to 5"}},
    ],
)
def test_invalid_host_entries(host):
    with pytest.raises(ValueError):
        AppConfig(hosts=[host])


def test_buffer_limits():
    with pytest.raises(ValueError, match="Buffers"):
        AppConfig(
            hosts=[{"id": "a"}],
            appointment_types=[{"id": "x", "hosts": ["a"], "buffer_before_minutes": 500}],
        )


def test_duplicate_ids():
    with pytest.raises(ValueError, match="Duplicate host id"):
        AppConfig(hosts=[{"id": "a"}, {"id": "a"}])
