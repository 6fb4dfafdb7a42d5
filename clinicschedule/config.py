"""
Configuration management using Pydantic models loaded from YAML.
"""

from decimal import Decimal
from pathlib import Path
from typing import List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.availability import CONFLICT_MODES


class BookingConfig(BaseModel):
    """Slot granularity and booking rules."""
    default_duration_minutes: int = 30
    allowed_durations: List[int] = Field(default_factory=lambda: [30, 60])
    min_lead_time_minutes: int = 60
    conflict_mode: str = "exact_start"

    @field_validator("allowed_durations")
    @classmethod
    def validate_durations(cls, value: List[int]) -> List[int]:
        """Ensure durations are positive and deduplicated."""
        if not value:
            raise ValueError("allowed_durations must not be empty")
        invalid = [d for d in value if d <= 0]
        if invalid:
            raise ValueError(f"allowed_durations must be greater than zero, got {invalid}")
        return sorted(set(value))

    @field_validator("min_lead_time_minutes")
    @classmethod
    def validate_lead_time(cls, value: int) -> int:
        if value < 0:
            raise ValueError("min_lead_time_minutes must not be negative")
        return value

    @field_validator("conflict_mode")
    @classmethod
    def validate_conflict_mode(cls, value: str) -> str:
        if value not in CONFLICT_MODES:
            raise ValueError(f"conflict_mode must be one of {list(CONFLICT_MODES)}, got '{value}'")
        return value

    @model_validator(mode="after")
    def validate_default_duration(self) -> "BookingConfig":
        """The default duration has to be one the clinic offers."""
        if self.default_duration_minutes not in self.allowed_durations:
            raise ValueError(
                f"default_duration_minutes {self.default_duration_minutes} "
                f"is not in allowed_durations {self.allowed_durations}"
            )
        return self


class FeeConfig(BaseModel):
    """Reschedule fee settings."""
    reschedule_fee_amount: Decimal = Decimal("50000")
    currency: str = "VND"
    fee_window_minutes: int = 30

    @field_validator("reschedule_fee_amount")
    @classmethod
    def validate_amount(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("reschedule_fee_amount must not be negative")
        return value

    @field_validator("fee_window_minutes")
    @classmethod
    def validate_window(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("fee_window_minutes must be greater than zero")
        return value


class BackendConfig(BaseModel):
    """Clinic REST backend used by the HTTP repositories."""
    base_url: str = "http://localhost:3000"
    timeout_seconds: float = 10.0
    api_token: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Asia/Ho_Chi_Minh"
    booking: BookingConfig = Field(default_factory=BookingConfig)
    fees: FeeConfig = Field(default_factory=FeeConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    log_level: str = "INFO"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject names pendulum cannot resolve."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log_level '{value}'")
        return level

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

    @classmethod
    def load_or_default(cls, config_path: Optional[Path] = None) -> "AppConfig":
        """Load ``config_path`` (or the default location) and fall back to built-in defaults."""
        path = config_path or get_default_config_path()
        if config_path is None and not path.exists():
            return cls()
        return cls.load_from_yaml(path)


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
