import os
from dataclasses import dataclass

from dotenv import load_dotenv

from ats_job_aggregator.scrapers.registry import SCRAPERS

# Load environment variables from .env file
load_dotenv()

DEFAULT_TARGET_COMPANIES = (
    "greenhouse:stripe,greenhouse:airbnb,greenhouse:coinbase,"
    "lever:netlify,lever:notion,ashby:ramp,smartrecruiters:visa"
)


def get_config() -> dict[str, str]:
    """
    Read raw configuration values from environment variables.
    Called lazily to avoid crashing on import.
    """
    return {
        "GEMINI_API_KEY": os.getenv("GEMINI_API_KEY", ""),
        "GEMINI_MODEL": os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
        "AI_TIMEOUT_SECONDS": os.getenv("AI_TIMEOUT_SECONDS", "8"),
        "DB_PATH": os.getenv("DB_PATH", "jobs.db"),
        "TARGET_COMPANIES": os.getenv("TARGET_COMPANIES", DEFAULT_TARGET_COMPANIES),
        "STALE_AFTER_DAYS": os.getenv("STALE_AFTER_DAYS", "7"),
        "VERIFY_COOLDOWN_HOURS": os.getenv("VERIFY_COOLDOWN_HOURS", "20"),
        "VERIFY_BATCH_SIZE": os.getenv("VERIFY_BATCH_SIZE", "10"),
        "VERIFY_BATCH_DELAY": os.getenv("VERIFY_BATCH_DELAY", "1"),
        "SCRAPE_INTERVAL": os.getenv("SCRAPE_INTERVAL", "1440"),
    }


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be a positive integer, got '{raw}'") from None
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    return value


def _positive_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a positive number, got '{raw}'") from None
    if value <= 0:
        raise ValueError(f"{name} must be a positive number, got {value}")
    return value


def parse_target_companies(raw: str) -> list[tuple[str, str]]:
    """
    Parse a comma-separated list of "source:company" pairs.
    Unknown sources are a configuration error.
    """
    companies: list[tuple[str, str]] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        source, sep, company_id = entry.partition(":")
        source = source.strip().lower()
        company_id = company_id.strip()
        if not sep or not source or not company_id:
            raise ValueError(f"TARGET_COMPANIES entry must look like 'source:company', got '{entry}'")
        if source not in SCRAPERS:
            raise ValueError(f"TARGET_COMPANIES entry '{entry}' uses unknown source '{source}'")
        companies.append((source, company_id))
    return companies


@dataclass(frozen=True)
class AppConfig:
    """Configuration resolved once at startup and passed to the services explicitly."""

    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    ai_timeout_seconds: float = 8.0
    db_path: str = "jobs.db"
    target_companies: tuple[tuple[str, str], ...] = ()
    stale_after_days: int = 7
    verify_cooldown_hours: int = 20
    verify_batch_size: int = 10
    verify_batch_delay: float = 1.0
    scrape_interval: int = 1440


class _Config:
    """Lazy configuration that only validates when values are actually accessed."""

    def __init__(self) -> None:
        self._config: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._config is None:
            self._config = get_config()
        return self._config

    @property
    def GEMINI_API_KEY(self) -> str | None:
        """The AI credential, or None when unset or blank."""
        return self._load()["GEMINI_API_KEY"].strip() or None

    @property
    def GEMINI_MODEL(self) -> str:
        return self._load()["GEMINI_MODEL"]

    @property
    def AI_TIMEOUT_SECONDS(self) -> float:
        return _positive_float("AI_TIMEOUT_SECONDS", self._load()["AI_TIMEOUT_SECONDS"])

    @property
    def DB_PATH(self) -> str:
        return self._load()["DB_PATH"]

    @property
    def TARGET_COMPANIES(self) -> list[tuple[str, str]]:
        return parse_target_companies(self._load()["TARGET_COMPANIES"])

    @property
    def STALE_AFTER_DAYS(self) -> int:
        return _positive_int("STALE_AFTER_DAYS", self._load()["STALE_AFTER_DAYS"])

    @property
    def VERIFY_COOLDOWN_HOURS(self) -> int:
        return _positive_int("VERIFY_COOLDOWN_HOURS", self._load()["VERIFY_COOLDOWN_HOURS"])

    @property
    def VERIFY_BATCH_SIZE(self) -> int:
        return _positive_int("VERIFY_BATCH_SIZE", self._load()["VERIFY_BATCH_SIZE"])

    @property
    def VERIFY_BATCH_DELAY(self) -> float:
        return _positive_float("VERIFY_BATCH_DELAY", self._load()["VERIFY_BATCH_DELAY"])

    @property
    def SCRAPE_INTERVAL(self) -> int:
        """Loop interval in minutes. Must be a positive integer."""
        return _positive_int("SCRAPE_INTERVAL", self._load()["SCRAPE_INTERVAL"])

    def to_app_config(self) -> AppConfig:
        return AppConfig(
            gemini_api_key=self.GEMINI_API_KEY,
            gemini_model=self.GEMINI_MODEL,
            ai_timeout_seconds=self.AI_TIMEOUT_SECONDS,
            db_path=self.DB_PATH,
            target_companies=tuple(self.TARGET_COMPANIES),
            stale_after_days=self.STALE_AFTER_DAYS,
            verify_cooldown_hours=self.VERIFY_COOLDOWN_HOURS,
            verify_batch_size=self.VERIFY_BATCH_SIZE,
            verify_batch_delay=self.VERIFY_BATCH_DELAY,
            scrape_interval=self.SCRAPE_INTERVAL,
        )


_cfg = _Config()


def load_app_config() -> AppConfig:
    """Build an AppConfig from a fresh read of the environment."""
    return _Config().to_app_config()


_LAZY_NAMES = (
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "AI_TIMEOUT_SECONDS",
    "DB_PATH",
    "TARGET_COMPANIES",
    "STALE_AFTER_DAYS",
    "VERIFY_COOLDOWN_HOURS",
    "VERIFY_BATCH_SIZE",
    "VERIFY_BATCH_DELAY",
    "SCRAPE_INTERVAL",
)

# Module-level type declarations for mypy.
# Values are resolved by __getattr__ below on first access, not at import time.
GEMINI_API_KEY: str | None
GEMINI_MODEL: str
AI_TIMEOUT_SECONDS: float
DB_PATH: str
TARGET_COMPANIES: list[tuple[str, str]]
STALE_AFTER_DAYS: int
VERIFY_COOLDOWN_HOURS: int
VERIFY_BATCH_SIZE: int
VERIFY_BATCH_DELAY: float
SCRAPE_INTERVAL: int


# Module-level lazy access using __getattr__ (PEP 562).
def __getattr__(name: str) -> object:
    if name in _LAZY_NAMES:
        return getattr(_cfg, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
