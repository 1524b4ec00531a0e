from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    telegram_allowed_user_id: int
    telegram_allowed_chat_id: int
    birthday_store_path: Path
    log_level: str = "INFO"


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _int_env(name: str) -> int:
    raw = _required_env(name)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from exc


def _log_level_env() -> str:
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown LOG_LEVEL: {level}")
    return level


def load_settings() -> Settings:
    root = Path.cwd()

    return Settings(
        telegram_bot_token=_required_env("TELEGRAM_BOT_TOKEN"),
        telegram_allowed_user_id=_int_env("TELEGRAM_ALLOWED_USER_ID"),
        telegram_allowed_chat_id=_int_env("TELEGRAM_ALLOWED_CHAT_ID"),
        birthday_store_path=Path(
            os.getenv("BIRTHDAY_STORE_PATH", root / "data" / "birthdays.toml")
        ),
        log_level=_log_level_env(),
    )
