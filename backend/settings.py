import os
from pathlib import Path

# Basic settings helper to read environment configuration.

DATA_DIR = Path(__file__).resolve().parent / "data"


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(val: str | None, default: int) -> int:
    if val is None or not val.strip():
        return default
    return int(val)


class Settings:
    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL", f"sqlite:///{DATA_DIR / 'coffee_finder.sqlite'}"
        )

        self.OVERPASS_URL: str = os.getenv(
            "OVERPASS_URL", "https://overpass-api.de/api/interpreter"
        )
        # [timeout:N] inside the query; the server enforces it
        self.OVERPASS_QUERY_TIMEOUT: int = _as_int(os.getenv("OVERPASS_QUERY_TIMEOUT"), 25)
        self.OVERPASS_HTTP_TIMEOUT_SECONDS: int = _as_int(
            os.getenv("OVERPASS_HTTP_TIMEOUT_SECONDS"), 30
        )
        self.OVERPASS_USER_AGENT: str = os.getenv(
            "OVERPASS_USER_AGENT", "coffee-finder/0.1 (contact: example@example.com)"
        )

        self.SEARCH_DEFAULT_RADIUS_M: int = _as_int(os.getenv("SEARCH_DEFAULT_RADIUS_M"), 5000)
        self.SEARCH_MIN_RADIUS_M: int = _as_int(os.getenv("SEARCH_MIN_RADIUS_M"), 500)
        self.SEARCH_MAX_RADIUS_M: int = _as_int(os.getenv("SEARCH_MAX_RADIUS_M"), 10000)
        self.SEARCH_MIN_RESULTS: int = _as_int(os.getenv("SEARCH_MIN_RESULTS"), 5)
        self.SEARCH_MAX_RESULTS: int = _as_int(os.getenv("SEARCH_MAX_RESULTS"), 20)
        self.SEARCH_MAX_RESULTS_LIMIT: int = _as_int(os.getenv("SEARCH_MAX_RESULTS_LIMIT"), 50)
        self.CACHE_MAX_AGE_DAYS: int = _as_int(os.getenv("CACHE_MAX_AGE_DAYS"), 14)
        self.SEARCH_LOG_ENABLED: bool = _as_bool(os.getenv("SEARCH_LOG_ENABLED"), True)


settings = Settings()
