"""
Runtime configuration for the Habits service and client.

All values come from environment variables so the same code runs locally,
in tests and behind a reverse proxy that injects the caller identity.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    database_url: str = "sqlite:///./habits.db"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    # Header set by the upstream identity provider once the caller is resolved
    auth_user_header: str = "X-User-Id"
    log_level: str = "INFO"
    day_rollover_hour: int = 4
    api_url: str = "http://localhost:8000"
    habit_order_file: Path = Path(".habits/habit-order.json")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", cls.port)),
            cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "*")),
            auth_user_header=os.getenv("AUTH_USER_HEADER", cls.auth_user_header),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            day_rollover_hour=int(os.getenv("DAY_ROLLOVER_HOUR", cls.day_rollover_hour)),
            api_url=os.getenv("HABITS_API_URL", cls.api_url),
            habit_order_file=Path(os.getenv("HABIT_ORDER_FILE", str(cls.habit_order_file))),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
