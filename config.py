import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

MATCHING_MODES = ("auto", "broadcast")


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///./dispatch.db"

    # Matching
    matching_mode: str = "broadcast"
    search_radius_meters: float = 5000
    max_candidates: int = 5
    accept_radius_meters: float = 10000
    nearby_rides_radius_meters: float = 5000
    nearby_rides_limit: int = 10

    # Fare
    fare_base: float = 3.50
    fare_per_km: float = 0.70
    fare_per_minute: float = 0.25
    fare_platform_fee_rate: float = 0.05
    fare_minimum: float = 4.00
    fare_currency: str = "USD"

    # Arrival estimate
    eta_min_minutes: int = 2
    eta_max_minutes: int = 15
    average_speed_kmh: float = 30

    # Collaborators
    routing_url: str | None = None
    routing_timeout_seconds: float = 5.0
    notification_queue_size: int = 100

    log_level: str = "INFO"

    def __post_init__(self):
        if self.matching_mode not in MATCHING_MODES:
            raise ValueError(
                f"MATCHING_MODE must be one of {MATCHING_MODES}, got {self.matching_mode!r}"
            )

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            matching_mode=os.getenv("MATCHING_MODE", cls.matching_mode).lower(),
            search_radius_meters=_env_float("SEARCH_RADIUS_METERS", cls.search_radius_meters),
            max_candidates=_env_int("MAX_CANDIDATES", cls.max_candidates),
            accept_radius_meters=_env_float("ACCEPT_RADIUS_METERS", cls.accept_radius_meters),
            nearby_rides_radius_meters=_env_float(
                "NEARBY_RIDES_RADIUS_METERS", cls.nearby_rides_radius_meters
            ),
            nearby_rides_limit=_env_int("NEARBY_RIDES_LIMIT", cls.nearby_rides_limit),
            fare_base=_env_float("FARE_BASE", cls.fare_base),
            fare_per_km=_env_float("FARE_PER_KM", cls.fare_per_km),
            fare_per_minute=_env_float("FARE_PER_MINUTE", cls.fare_per_minute),
            fare_platform_fee_rate=_env_float("FARE_PLATFORM_FEE_RATE", cls.fare_platform_fee_rate),
            fare_minimum=_env_float("FARE_MINIMUM", cls.fare_minimum),
            fare_currency=os.getenv("FARE_CURRENCY", cls.fare_currency),
            eta_min_minutes=_env_int("ETA_MIN_MINUTES", cls.eta_min_minutes),
            eta_max_minutes=_env_int("ETA_MAX_MINUTES", cls.eta_max_minutes),
            average_speed_kmh=_env_float("AVERAGE_SPEED_KMH", cls.average_speed_kmh),
            routing_url=os.getenv("ROUTING_URL") or None,
            routing_timeout_seconds=_env_float("ROUTING_TIMEOUT_SECONDS", cls.routing_timeout_seconds),
            notification_queue_size=_env_int("NOTIFICATION_QUEUE_SIZE", cls.notification_queue_size),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
