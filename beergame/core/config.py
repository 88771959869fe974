import logging
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from beergame.core.logging import setup_logging
from beergame.schemas.game import GameConfig


class Settings(BaseSettings):
    # Game defaults
    TOTAL_ROUNDS: int = Field(30, ge=1)
    TRANSPORT_DELAY: int = Field(1, ge=1)
    RECEIVING_TIME: int = Field(1, ge=1)
    PRODUCTION_TIME: int = Field(1, ge=1)
    UNIT_HOLDING_COST: float = Field(1.0, ge=0)
    UNIT_BACKORDER_COST: float = Field(2.0, ge=0)
    RANDOM_SEED: Optional[int] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None  # e.g. "logs/beergame.log"

    model_config = SettingsConfigDict(env_prefix="BEERGAME_", env_file=".env", extra="ignore")

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def game_config(self, **overrides) -> GameConfig:
        """Build a :class:`GameConfig` from these settings, applying keyword overrides."""
        values = {
            "total_rounds": self.TOTAL_ROUNDS,
            "transport_delay": self.TRANSPORT_DELAY,
            "receiving_time": self.RECEIVING_TIME,
            "production_time": self.PRODUCTION_TIME,
            "unit_holding_cost": self.UNIT_HOLDING_COST,
            "unit_backorder_cost": self.UNIT_BACKORDER_COST,
            "seed": self.RANDOM_SEED,
        }
        values.update(overrides)
        return GameConfig(**values)

    def configure_logging(self, name: str = "beergame") -> logging.Logger:
        return setup_logging(name, level=self.LOG_LEVEL, log_file=self.LOG_FILE)


settings = Settings()
