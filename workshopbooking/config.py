"""
Configuration management using Pydantic models loaded from YAML.

Secrets (Redis REST credentials, bot token, admin chat ids) may be left out of
the YAML file and supplied through the environment or a ``.env`` file.
"""

import os
from pathlib import Path
from typing import List, Literal

import pendulum
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import Schedule


def parse_chat_ids(raw: str) -> List[str]:
    """
    Parse a comma-separated list of Telegram chat ids.

    Groups and supergroups have negative ids; duplicates are dropped.
    """
    result: List[str] = []
    for part in (p.strip() for p in raw.split(",")):
        if not part:
            continue
        try:
            int(part)
        except ValueError as e:
            raise ValueError(f"Invalid chat id value: {part!r}. Expected integer chat id.") from e
        if part == "0":
            raise ValueError("Invalid chat id value: '0' is not a valid chat id")
        if part not in result:
            result.append(part)
    return result


class ScheduleConfig(BaseModel):
    """The fixed class-day schedule."""
    opening_hour: int = 10
    slot_count: int = 4
    price_per_hour: int = 700
    class_weekday: int = pendulum.SATURDAY.value
    booking_weekday: int = pendulum.FRIDAY.value

    @field_validator("opening_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("slot_count", "price_per_hour")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be greater than zero, got {v}")
        return v

    @field_validator("class_weekday", "booking_weekday")
    @classmethod
    def validate_weekday(cls, v: int) -> int:
        """Weekdays are 0=Monday .. 6=Sunday."""
        if v not in range(7):
            raise ValueError(f"Weekday must be between 0 and 6, got {v}")
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "ScheduleConfig":
        """Ensure the operating window closes on the same day."""
        if self.opening_hour + self.slot_count > 24:
            raise ValueError("opening_hour + slot_count must not exceed 24")
        return self

    def to_schedule(self) -> Schedule:
        return Schedule(
            opening_hour=self.opening_hour,
            slot_count=self.slot_count,
            price_per_hour=self.price_per_hour,
        )


class WorkshopConfig(BaseModel):
    """Studio details shown in bot replies."""
    name: str = "Студия керамики «Майолика»"
    address: str = ""
    phone: str = ""


class StoreConfig(BaseModel):
    """Where the booking list lives."""
    backend: Literal["memory", "file", "upstash"] = "file"
    path: Path = Path("bookings.json")
    key: str = "clay_workshop_bookings"
    subscribers_key: str = "telegram_users"
    url: str = ""
    token: str = ""
    timeout_seconds: float = 10.0

    @model_validator(mode="after")
    def validate_credentials(self) -> "StoreConfig":
        if self.backend == "upstash" and not (self.url and self.token):
            raise ValueError(
                "store.url and store.token (or UPSTASH_REDIS_REST_URL / "
                "UPSTASH_REDIS_REST_TOKEN) are required for the upstash backend"
            )
        return self


class TelegramConfig(BaseModel):
    """Bot credentials and delivery tuning."""
    bot_token: str = ""
    admin_chat_ids: List[str] = Field(default_factory=list)
    timeout_seconds: float = 10.0
    broadcast_delay_seconds: float = 0.05

    @field_validator("admin_chat_ids", mode="before")
    @classmethod
    def validate_chat_ids(cls, value) -> List[str]:
        if isinstance(value, str):
            return parse_chat_ids(value)
        return parse_chat_ids(",".join(str(v) for v in value or []))


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Moscow"
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    workshop: WorkshopConfig = Field(default_factory=WorkshopConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except Exception as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path, use_env: bool = True) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file
            use_env: Apply secrets from the environment / ``.env``

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

        if use_env:
            load_dotenv(override=False)
            apply_env_overrides(data)

        return cls(**data)


def apply_env_overrides(data: dict) -> dict:
    """Fill secrets from environment variables into raw config data."""
    store = data.setdefault("store", {}) or {}
    telegram = data.setdefault("telegram", {}) or {}
    data["store"], data["telegram"] = store, telegram

    env_map = [
        (store, "url", "UPSTASH_REDIS_REST_URL"),
        (store, "token", "UPSTASH_REDIS_REST_TOKEN"),
        (telegram, "bot_token", "TELEGRAM_BOT_TOKEN"),
        (telegram, "admin_chat_ids", "TELEGRAM_ADMIN_IDS"),
    ]
    for section, field, env_name in env_map:
        value = os.getenv(env_name)
        if value:
            section[field] = value

    return data


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
