"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from enum import Enum
from pathlib import Path
from typing import List

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class AssignmentStrategy(str, Enum):
    """How a consultant is picked from a pool for a booking."""
    OPTIMAL = "optimal"    # most remaining capacity first
    BALANCED = "balanced"  # fewest overlapping bookings first
    FIRST = "first"        # consultant id order


class EngineSettings(BaseModel):
    """Settings handed to the enumerator and the commit guard."""
    slot_granularity_minutes: int = 15
    sample_times: List[time] = Field(default_factory=list)  # empty: scan the whole day
    days_ahead: int = 30
    max_results: int = 15
    assignment_strategy: AssignmentStrategy = AssignmentStrategy.OPTIMAL
    default_minimum_advance_hours: int = 24
    pending_hold_minutes: int = 15

    @field_validator("slot_granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        """Ensure slots tile an hour evenly."""
        if value <= 0 or 60 % value != 0:
            raise ValueError(f"slot_granularity_minutes must divide 60, got {value}")
        return value

    @field_validator("days_ahead", "max_results")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("default_minimum_advance_hours", "pending_hold_minutes")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("sample_times")
    @classmethod
    def validate_sample_times(cls, value: List[time]) -> List[time]:
        """Sort and deduplicate sample times."""
        return sorted(set(value))


class StoreSettings(BaseModel):
    """Connection settings for the managed relational backend."""
    url: str = ""
    api_key: str = ""
    schema_name: str = Field(default="public", alias="schema")
    timeout_seconds: float = 10.0
    lock_timeout_seconds: float = 5.0

    model_config = {"populate_by_name": True}

    @field_validator("timeout_seconds", "lock_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        """Every collaborator call must be bounded."""
        if value <= 0:
            raise ValueError("timeouts must be greater than zero")
        return value

    def rest_url(self) -> str:
        """Base URL of the REST interface."""
        return f"{self.url.rstrip('/')}/rest/v1"


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    engine: EngineSettings = Field(default_factory=EngineSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @model_validator(mode="after")
    def validate_sample_granularity(self) -> "AppConfig":
        """Sample times must land on the slot grid."""
        step = self.engine.slot_granularity_minutes
        for sample in self.engine.sample_times:
            if (sample.hour * 60 + sample.minute) % step:
                raise ValueError(f"sample time {sample:%H:%M} is not on the {step}-minute grid")
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

        return cls(**data)


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
