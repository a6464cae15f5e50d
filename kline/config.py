# kline/config.py
import math
import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Loads variables from a local .env file into environment variables (dev only).
load_dotenv()

DEFAULT_SYMBOLS = "btcusdt,ethusdt,xrpusdt,ltcusdt,eosusdt,bchusdt"


@dataclass(frozen=True)
class Settings:
    # App config
    app_env: str
    log_level: str
    port: int

    # Polling
    symbols: list[str]
    poll_interval_ms: int
    poll_timeout_seconds: float

    # Retention
    retention_days: float
    clean_interval_seconds: float

    # Storage
    storage_backend: str
    data_dir: str
    json_path: str
    database_url: str
    save_debounce_ms: int

    # Provider config (Huobi)
    provider: str
    huobi_base_url: str
    huobi_timeout_seconds: float

    @property
    def retention_ms(self) -> int:
        return int(self.retention_days * 24 * 60 * 60 * 1000)


def _positive_float(name: str, default: float) -> float:
    """Env var as a positive finite float; anything else falls back to `default`."""
    try:
        value = float(os.getenv(name, ""))
    except ValueError:
        return default
    if not math.isfinite(value) or value <= 0:
        return default
    return value


def get_settings() -> Settings:
    """
    Reads env vars and returns a Settings object.
    """
    symbols = [
        s.strip().lower()
        for s in os.getenv("KLINE_SYMBOLS", DEFAULT_SYMBOLS).split(",")
        if s.strip()
    ]

    data_dir = os.getenv("KLINE_DATA_DIR", "data")

    return Settings(
        app_env=os.getenv("APP_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        port=int(_positive_float("KLINE_PORT", 4000)),
        symbols=symbols,
        poll_interval_ms=int(_positive_float("KLINE_POLL_INTERVAL_MS", 1000)),
        poll_timeout_seconds=_positive_float("KLINE_POLL_TIMEOUT_SECONDS", 10.0),
        retention_days=_positive_float("KLINE_RETENTION_DAYS", 7),
        clean_interval_seconds=_positive_float("KLINE_CLEAN_INTERVAL_SECONDS", 60 * 60),
        storage_backend=os.getenv("KLINE_STORAGE", "sqlite"),
        data_dir=data_dir,
        json_path=os.getenv("KLINE_JSON_PATH", os.path.join(data_dir, "kline.json")),
        database_url=os.getenv(
            "KLINE_DATABASE_URL", f"sqlite:///{os.path.join(data_dir, 'kline.db')}"
        ),
        save_debounce_ms=int(_positive_float("KLINE_SAVE_DEBOUNCE_MS", 250)),
        provider=os.getenv("KLINE_PROVIDER", "HUOBI"),
        huobi_base_url=os.getenv("HUOBI_BASE_URL", "https://api.huobi.pro").rstrip("/"),
        huobi_timeout_seconds=_positive_float("HUOBI_TIMEOUT_SECONDS", 10.0),
    )
