"""YAML configuration loading and validation."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel

from seatsnipe.errors import ConfigError
from seatsnipe.models import DayTask, SeatConfig, UserCredentials

M = TypeVar("M", bound=BaseModel)

# Accepted week_config keys per weekday (Monday = 0).
WEEKDAY_KEYS: dict[int, tuple[str, ...]] = {
    0: ("周一", "monday", "mon"),
    1: ("周二", "tuesday", "tue"),
    2: ("周三", "wednesday", "wed"),
    3: ("周四", "thursday", "thu"),
    4: ("周五", "friday", "fri"),
    5: ("周六", "saturday", "sat"),
    6: ("周日", "sunday", "sun"),
}


def _load_yaml(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a YAML mapping, got {type(data).__name__}")
    return data


def _validate(model: type[M], data: dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid config: {e}") from e


def load_seat_config(path: str | Path) -> SeatConfig:
    """Load and validate user_config.yml (global settings + weekly tasks)."""
    return _validate(SeatConfig, _load_yaml(path))


def load_user_info(path: str | Path) -> UserCredentials:
    """Load user_info.yml (school_id + password)."""
    return _validate(UserCredentials, _load_yaml(path))


def task_for_day(config: SeatConfig, day: date) -> tuple[str, DayTask] | None:
    """Find the week_config entry for ``day``'s weekday, whatever key spelling is used."""
    keys = WEEKDAY_KEYS[day.weekday()]
    for name, task in config.week_config.items():
        if name.strip().lower() in keys:
            return name, task
    return None


def task_by_key(config: SeatConfig, key: str) -> DayTask:
    try:
        return config.week_config[key]
    except KeyError:
        raise ConfigError(
            f"No task named '{key}' in week_config (have: {', '.join(config.week_config)})"
        ) from None
