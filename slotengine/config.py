"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.intervals import is_valid_timezone, parse_hhmm
from .domain.models import (
    MAX_BUFFER_MINUTES,
    MAX_WINDOW_DAYS,
    WEEKDAY_NAMES,
    AppointmentTypeConfig,
    DayRule,
    SchedulingMode,
    WeeklyAvailability,
)


class DefaultsConfig(BaseModel):
    """Default settings for slot generation and booking."""
    step_minutes: int = 15
    max_slots: int = 48
    window_days: int = 14
    max_horizon_days: int = 60
    cache_ttl_seconds: float = 30.0

    @field_validator("step_minutes", "max_slots")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure iteration limits are positive."""
        if value <= 0:
            raise ValueError("step_minutes and max_slots must be greater than zero")
        return value

    @field_validator("window_days", "max_horizon_days")
    @classmethod
    def validate_days(cls, value: int) -> int:
        """Validate day counts are between 1 and 60."""
        if not 1 <= value <= MAX_WINDOW_DAYS:
            raise ValueError(f"Day count must be between 1 and {MAX_WINDOW_DAYS}, got {value}")
        return value


class HostConfig(BaseModel):
    """A bookable host and their weekly availability."""
    id: str
    name: str = ""
    timezone: str = "UTC"
    # Weekday name -> "HH:MM-HH:MM". Days not listed are unavailable.
    weekly: Dict[str, str] = Field(
        default_factory=lambda: {day: "09:00-17:00" for day in ("mon", "tue", "wed", "thu", "fri")}
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        if not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("weekly")
    @classmethod
    def validate_weekly(cls, value: Dict[str, str]) -> Dict[str, str]:
        """Normalise weekday keys and check every range parses."""
        normalised: Dict[str, str] = {}
        for day, span in value.items():
            key = day.strip().lower()[:3]
            if key not in WEEKDAY_NAMES:
                raise ValueError(f"Unknown weekday: {day}")
            _parse_span(span)
            normalised[key] = span
        return normalised

    def display_name(self) -> str:
        return self.name or self.id

    def to_availability(self) -> WeeklyAvailability:
        days = []
        for weekday, name in enumerate(WEEKDAY_NAMES):
            span = self.weekly.get(name)
            if span is None:
                days.append(DayRule(weekday=weekday, enabled=False))
                continue
            start_minute, end_minute = _parse_span(span)
            days.append(DayRule(weekday=weekday, start_minute=start_minute, end_minute=end_minute))
        return WeeklyAvailability(time_zone=self.timezone, days=tuple(days))


class AppointmentTypeEntry(BaseModel):
    """An appointment type as written in the config file."""
    id: str
    name: str = ""
    duration_minutes: int = 30
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    mode: SchedulingMode = SchedulingMode.SINGLE
    hosts: List[str] = Field(default_factory=list)

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure appointment duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("buffer_before_minutes", "buffer_after_minutes")
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        if not 0 <= value <= MAX_BUFFER_MINUTES:
            raise ValueError(f"Buffers must be between 0 and {MAX_BUFFER_MINUTES} minutes, got {value}")
        return value

    @field_validator("hosts")
    @classmethod
    def validate_hosts(cls, value: List[str]) -> List[str]:
        """Rotation order must not repeat a host."""
        if len(set(value)) != len(value):
            raise ValueError(f"Duplicate host in team: {value}")
        return value

    @model_validator(mode="after")
    def validate_team_size(self) -> "AppointmentTypeEntry":
        if not self.hosts:
            raise ValueError(f"Appointment type '{self.id}' needs at least one host")
        if self.mode is SchedulingMode.SINGLE and len(self.hosts) > 1:
            raise ValueError(f"Appointment type '{self.id}' is single-host but lists {len(self.hosts)} hosts")
        return self

    def to_domain(self) -> AppointmentTypeConfig:
        return AppointmentTypeConfig(
            type_id=self.id,
            duration_minutes=self.duration_minutes,
            buffer_before_minutes=self.buffer_before_minutes,
            buffer_after_minutes=self.buffer_after_minutes,
            scheduling_mode=self.mode,
            team_host_ids=tuple(self.hosts),
        )


class AppConfig(BaseModel):
    """Application configuration."""
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    hosts: List[HostConfig] = Field(default_factory=list)
    appointment_types: List[AppointmentTypeEntry] = Field(default_factory=list)
    data_file: Path = Path("bookings.json")
    api_base_url: str = ""
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("hosts")
    @classmethod
    def validate_unique_hosts(cls, value: List[HostConfig]) -> List[HostConfig]:
        """Ensure host ids are unique."""
        seen: set[str] = set()
        for host in value:
            if host.id in seen:
                raise ValueError(f"Duplicate host id detected: {host.id}")
            seen.add(host.id)
        return value

    @model_validator(mode="after")
    def validate_references(self) -> "AppConfig":
        """Every appointment type must reference configured hosts."""
        host_ids = {host.id for host in self.hosts}
        type_ids: set[str] = set()
        for entry in self.appointment_types:
            if entry.id in type_ids:
                raise ValueError(f"Duplicate appointment type id detected: {entry.id}")
            type_ids.add(entry.id)
            unknown = [host for host in entry.hosts if host not in host_ids]
            if unknown:
                raise ValueError(f"Appointment type '{entry.id}' references unknown hosts: {unknown}")
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Relative ``data_file`` paths are resolved against the config file's
        directory.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)
        if not config.data_file.is_absolute():
            config.data_file = config_path.parent / config.data_file
        return config

    def find_host(self, host_id: str) -> HostConfig | None:
        for host in self.hosts:
            if host.id == host_id:
                return host
        return None

    def find_appointment_type(self, type_id: str) -> AppointmentTypeEntry | None:
        for entry in self.appointment_types:
            if entry.id == type_id:
                return entry
        return None

    def availabilities(self) -> Dict[str, WeeklyAvailability]:
        return {host.id: host.to_availability() for host in self.hosts}

    def domain_appointment_types(self) -> List[AppointmentTypeConfig]:
        return [entry.to_domain() for entry in self.appointment_types]


def _parse_span(span: str) -> tuple[int, int]:
    try:
        start, end = span.split("-")
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid time span: {span!r}, expected HH:MM-HH:MM") from exc
    return parse_hhmm(start), parse_hhmm(end)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
