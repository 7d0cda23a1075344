"""Service configuration read from the environment"""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from evv_service.geo.distance import ProximityTier
from evv_service.geo.location import LocationAccuracy

load_dotenv()

PROXIMITY_POLICY_FLAG = "flag"
PROXIMITY_POLICY_BLOCK = "block"
VALID_PROXIMITY_POLICIES = [PROXIMITY_POLICY_FLAG, PROXIMITY_POLICY_BLOCK]


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_choice(name: str, default: str, choices) -> str:
    value = os.getenv(name, default).strip().lower()
    if value not in choices:
        raise ValueError(
            f"Invalid {name} '{value}'. "
            f"Must be one of: {', '.join(choices)}"
        )
    return value


def _build_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    return (
        f"postgresql+asyncpg://{os.getenv('DB_USER')}:{os.getenv('DB_PASSWORD')}"
        f"@{os.getenv('DB_HOST')}:{os.getenv('DB_PORT')}/{os.getenv('DB_NAME')}"
    )


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the EVV service"""
    database_url: str
    db_echo: bool = False
    db_schema: Optional[str] = None
    proximity_policy: str = PROXIMITY_POLICY_FLAG
    proximity_tier: str = "normal"
    location_accuracy: str = "high"
    geocoder_url: Optional[str] = None
    geocoder_user_agent: str = "evv-service/1.0"
    geocoder_timeout_seconds: float = 5.0
    rabbitmq_host: Optional[str] = None
    rabbitmq_port: int = 5672
    rabbitmq_user: Optional[str] = None
    rabbitmq_password: Optional[str] = None
    rabbitmq_exchange: str = "evv.events"
    local_timezone: str = "Europe/Paris"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_build_database_url(),
            db_echo=_env_bool("DB_ECHO"),
            db_schema=os.getenv("DB_SCHEMA") or None,
            proximity_policy=_env_choice("EVV_PROXIMITY_POLICY", PROXIMITY_POLICY_FLAG, VALID_PROXIMITY_POLICIES),
            proximity_tier=_env_choice("EVV_PROXIMITY_TIER", "normal", [t.value for t in ProximityTier]),
            location_accuracy=_env_choice("EVV_LOCATION_ACCURACY", "high", [a.value for a in LocationAccuracy]),
            geocoder_url=os.getenv("GEOCODER_URL") or None,
            geocoder_user_agent=os.getenv("GEOCODER_USER_AGENT", "evv-service/1.0"),
            geocoder_timeout_seconds=float(os.getenv("GEOCODER_TIMEOUT_SECONDS", "5")),
            rabbitmq_host=os.getenv("RABBITMQ_HOST") or None,
            rabbitmq_port=int(os.getenv("RABBITMQ_PORT", "5672")),
            rabbitmq_user=os.getenv("RABBITMQ_USER"),
            rabbitmq_password=os.getenv("RABBITMQ_PASSWORD"),
            rabbitmq_exchange=os.getenv("RABBITMQ_EVV_EXCHANGE", "evv.events"),
            local_timezone=os.getenv("LOCAL_TIMEZONE", "Europe/Paris"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache
def get_settings() -> Settings:
    """Settings singleton (cached after first read)"""
    return Settings.from_env()
