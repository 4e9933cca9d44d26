"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import date, time
from pathlib import Path
from typing import Dict, List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .domain.exceptions import ConfigError
from .domain.models import Closure, DayHours, OperatingHours, Resource, hours_to_minutes
from .domain.registry import ResourceRegistry
from .domain.suggestion_engine import SuggestionPolicy


def _parse_time_of_day(value):
    """
    Accept "HH:MM" strings and time objects.

    Unquoted YAML values such as 17:00 arrive as sexagesimal integers
    (1020), so integers are read as minutes after midnight.
    """
    if isinstance(value, time):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid time of day: {value!r}")
    if isinstance(value, int):
        if not 0 <= value < 24 * 60:
            raise ValueError(f"Invalid time of day: {value}")
        return time(hour=value // 60, minute=value % 60)
    if isinstance(value, str):
        try:
            hour, minute = (int(part) for part in value.strip().split(":"))
            return time(hour=hour, minute=minute)
        except ValueError as exc:
            raise ValueError(f"Invalid time of day '{value}', expected HH:MM") from exc
    raise ValueError(f"Invalid time of day: {value!r}")


class DayHoursConfig(BaseModel):
    """Hours for a single weekday override."""
    open: time = time(8, 0)
    close: time = time(17, 0)
    closed: bool = False

    @field_validator("open", "close", mode="before")
    @classmethod
    def parse_time(cls, value):
        return _parse_time_of_day(value)

    @model_validator(mode="after")
    def validate_order(self) -> "DayHoursConfig":
        if not self.closed and self.close <= self.open:
            raise ValueError("close must be later than open")
        return self


class HoursConfig(BaseModel):
    """Weekly operating hours (0=Monday, 6=Sunday)."""
    days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    open: time = time(8, 0)
    close: time = time(17, 0)
    overrides: Dict[int, DayHoursConfig] = Field(default_factory=dict)

    @field_validator("open", "close", mode="before")
    @classmethod
    def parse_time(cls, value):
        return _parse_time_of_day(value)

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"days must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int] = []
        for day in value:
            if day not in seen:
                deduped.append(day)
                seen.add(day)
        return deduped

    @field_validator("overrides")
    @classmethod
    def validate_override_days(cls, value: Dict[int, DayHoursConfig]) -> Dict[int, DayHoursConfig]:
        invalid_days = sorted(day for day in value if day not in range(7))
        if invalid_days:
            raise ValueError(f"override weekdays must be between 0 and 6, got {invalid_days}")
        return value

    @model_validator(mode="after")
    def validate_hours_order(self) -> "HoursConfig":
        """Ensure the configured window opens before it closes."""
        if self.close <= self.open:
            raise ValueError("close must be later than open")
        return self

    def to_operating_hours(self) -> OperatingHours:
        days = {day: DayHours(open=self.open, close=self.close) for day in self.days}
        for day, override in self.overrides.items():
            if override.closed:
                days.pop(day, None)
            else:
                days[day] = DayHours(open=override.open, close=override.close)
        return OperatingHours(days=dict(sorted(days.items())))


class ResourceConfig(BaseModel):
    """Bay configuration."""
    id: str
    label: str = ""
    capabilities: List[str] = Field(default_factory=list)
    active: bool = True
    hours: HoursConfig = Field(default_factory=HoursConfig)

    def display_name(self) -> str:
        """Get display name."""
        return self.label or self.id

    def to_resource(self) -> Resource:
        return Resource(
            id=self.id,
            label=self.display_name(),
            hours=self.hours.to_operating_hours(),
            capabilities=frozenset(self.capabilities),
            active=self.active,
        )


class ClosureConfig(BaseModel):
    """Holiday or bay downtime; no resources means the whole shop."""
    id: str
    name: str = ""
    start_date: date
    end_date: date
    resources: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_range(self) -> "ClosureConfig":
        if self.end_date < self.start_date:
            raise ValueError(f"closure '{self.id}' ends before it starts")
        return self

    def to_closure(self) -> Closure:
        return Closure(
            id=self.id,
            name=self.name or self.id,
            start_date=self.start_date,
            end_date=self.end_date,
            resource_ids=frozenset(self.resources),
        )


class SchedulingConfig(BaseModel):
    """Grid and search settings."""
    granularity_hours: float = 0.5
    default_duration_hours: float = 1.0
    buffer_minutes: int = 0
    search_horizon_days: int = 5
    move_new_alternatives: int = 3
    allow_same_day_scheduling: bool = True

    @field_validator("granularity_hours", "default_duration_hours")
    @classmethod
    def validate_whole_minutes(cls, value: float) -> float:
        """Hours must be positive and map to whole minutes."""
        hours_to_minutes(value)
        return value

    @field_validator("buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        if value < 0:
            raise ValueError("buffer_minutes must not be negative")
        return value

    @field_validator("search_horizon_days", "move_new_alternatives")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be at least 1")
        return value


class ScoringConfig(BaseModel):
    """Suggestion engine weights and thresholds."""
    time_of_day_weight: float = 0.25
    load_balance_weight: float = 0.20
    gap_weight: float = 0.20
    priority_bonus: float = 0.1
    preferred_resource_bonus: float = 0.1
    lunch_penalty: float = 0.2
    lunch_start_hour: int = 12
    lunch_end_hour: int = 14
    min_score: float = 0.3
    optimal_threshold: float = 0.8
    efficient_threshold: float = 0.6
    top_k: int = 8

    @field_validator(
        "time_of_day_weight",
        "load_balance_weight",
        "gap_weight",
        "priority_bonus",
        "preferred_resource_bonus",
        "lunch_penalty",
        "min_score",
        "optimal_threshold",
        "efficient_threshold",
    )
    @classmethod
    def validate_unit_interval(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"value must be between 0 and 1, got {value}")
        return value

    @field_validator("lunch_start_hour", "lunch_end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 24."""
        if not 0 <= v <= 24:
            raise ValueError(f"Hour must be between 0 and 24, got {v}")
        return v

    @field_validator("top_k")
    @classmethod
    def validate_top_k(cls, value: int) -> int:
        if value < 1:
            raise ValueError("top_k must be at least 1")
        return value

    @model_validator(mode="after")
    def validate_bands(self) -> "ScoringConfig":
        if self.lunch_end_hour < self.lunch_start_hour:
            raise ValueError("lunch_end_hour must not be earlier than lunch_start_hour")
        if self.efficient_threshold > self.optimal_threshold:
            raise ValueError("efficient_threshold must not exceed optimal_threshold")
        return self


def _default_resources() -> List[ResourceConfig]:
    return [
        ResourceConfig(id="bay-1", label="Bay 1"),
        ResourceConfig(id="bay-2", label="Bay 2"),
    ]


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Berlin"
    resources: List[ResourceConfig] = Field(default_factory=_default_resources)
    closures: List[ClosureConfig] = Field(default_factory=list)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @field_validator("resources")
    @classmethod
    def validate_resources(cls, value: List[ResourceConfig]) -> List[ResourceConfig]:
        """Ensure at least one bay and unique bay ids."""
        if not value:
            raise ValueError("At least one resource must be configured")
        seen: set[str] = set()
        for resource in value:
            if resource.id in seen:
                raise ValueError(f"Duplicate resource id detected: {resource.id}")
            seen.add(resource.id)
        return value

    @model_validator(mode="after")
    def validate_closure_resources(self) -> "AppConfig":
        known = {resource.id for resource in self.resources}
        for closure in self.closures:
            unknown = sorted(set(closure.resources) - known)
            if unknown:
                raise ValueError(
                    f"Closure '{closure.id}' references unknown resources: {', '.join(unknown)}"
                )
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigError: If config is invalid
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
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping at the root level.")

        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration in {config_path}:\n{exc}") from exc

    def build_registry(self) -> ResourceRegistry:
        return ResourceRegistry(
            [resource.to_resource() for resource in self.resources],
            closures=[closure.to_closure() for closure in self.closures],
            timezone=self.timezone,
        )

    def build_policy(self) -> SuggestionPolicy:
        return SuggestionPolicy(
            **self.scoring.model_dump(),
            granularity_hours=self.scheduling.granularity_hours,
            allow_same_day_scheduling=self.scheduling.allow_same_day_scheduling,
        )


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


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load the config file, falling back to built-in defaults when none exists."""
    path = config_path or get_default_config_path()
    if config_path is None and not path.exists():
        return AppConfig()
    return AppConfig.load_from_yaml(path)
