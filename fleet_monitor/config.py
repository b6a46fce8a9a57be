"""
Configuration settings for the fleet monitor.

Values come from the environment (prefix ``FLEET_``). A local ``.env`` file is
loaded into the environment first.
"""

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="FLEET_", case_sensitive=False)

    # Application
    app_name: str = "Fuel Fleet Monitor"
    log_level: str = "INFO"

    # Simulation clock
    tick_interval_seconds: float = 1.5
    autostart: bool = True
    random_seed: Optional[int] = None

    # Commands
    allow_reassign: bool = False # True: assigning a busy truck overwrites its trip
    trip_distance_warning_m: float = 120_000

    # Geofencing
    route_deviation_alerts: bool = True
    corridor_width_m: float = 500

    # Stream caps
    max_alerts: int = 50
    max_loss_history: int = 500
    max_consumption_samples: int = 1000


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Read ``env_file`` (or the nearest ``.env``) into the environment, then build Settings."""
    load_dotenv(env_file)
    return Settings()


settings = load_settings()
