"""Configuration settings for the trade & macro pipeline."""

from dataclasses import dataclass, field
from pathlib import Path
import os

from dotenv import load_dotenv


load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Bilateral pair the dashboard tracks
DEFAULT_REPORTER = "IND"
DEFAULT_PARTNER = "CHN"
DEFAULT_YEAR_RANGE: tuple[int, int] = (2000, 2024)

# Currency symbol -> ISO3 country it is reported against
FX_SYMBOL_COUNTRIES: dict[str, str] = {
    "INR": "IND",
    "CNY": "CHN",
}


@dataclass
class Settings:
    """Application settings."""

    max_retries: int = field(default_factory=lambda: int(os.getenv("MAX_RETRIES", "3")))
    retry_base_ms: int = field(
        default_factory=lambda: int(os.getenv("RETRY_BASE_MS", "1000"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30"))
    )
    cache_ttl_seconds: float = field(
        default_factory=lambda: float(os.getenv("CACHE_TTL_SECONDS", "1800"))
    )
    live_refresh: bool = field(default_factory=lambda: _env_bool("LIVE_REFRESH", True))
    forecast_enabled: bool = field(
        default_factory=lambda: _env_bool("FORECAST_ENABLED", True)
    )
    snapshot_fallback: bool = field(
        default_factory=lambda: _env_bool("SNAPSHOT_FALLBACK", True)
    )
    comtrade_enabled: bool = field(
        default_factory=lambda: _env_bool("COMTRADE_ENABLED", False)
    )
    comtrade_base_url: str = field(
        default_factory=lambda: os.getenv("COMTRADE_BASE_URL", "https://comtradeapi.un.org")
    )
    comtrade_api_key: str = field(
        default_factory=lambda: os.getenv("COMTRADE_API_KEY", "")
    )
    cache_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("CACHE_DIR", str(Path(__file__).parent.parent.parent / "cache"))
        )
    )
    db_path: Path = field(init=False)

    def __post_init__(self) -> None:
        self.cache_dir = Path(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / "response_cache.db"

    def validate(self) -> None:
        """Validate settings that would make the pipeline misbehave."""
        if self.max_retries < 0:
            raise ValueError(f"MAX_RETRIES must be >= 0, got {self.max_retries}")
        if self.retry_base_ms < 0:
            raise ValueError(f"RETRY_BASE_MS must be >= 0, got {self.retry_base_ms}")
        if self.request_timeout <= 0:
            raise ValueError(
                f"REQUEST_TIMEOUT must be positive, got {self.request_timeout}"
            )
        if self.cache_ttl_seconds < 0:
            raise ValueError(
                f"CACHE_TTL_SECONDS must be >= 0, got {self.cache_ttl_seconds}"
            )

    def has_comtrade(self) -> bool:
        """Check if the optional Comtrade source is enabled and keyed."""
        return self.comtrade_enabled and bool(self.comtrade_api_key)
