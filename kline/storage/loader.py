from kline.config import Settings
from kline.storage.base import QuoteStore
from kline.storage.json_store import JsonFileStore
from kline.storage.sql_store import SqlStore


def get_store(settings: Settings) -> QuoteStore:
    """
    Store loader / factory.

    Reads KLINE_STORAGE from config and returns an (unopened) backend:
    - "sqlite" (default): SqlStore, every write is committed immediately
    - "json": JsonFileStore, debounced whole-file rewrites
    """
    backend = settings.storage_backend.strip().lower()

    if backend in ("sqlite", "sql", "db"):
        return SqlStore(settings.database_url)

    if backend in ("json", "file"):
        return JsonFileStore(settings.json_path, save_debounce_ms=settings.save_debounce_ms)

    raise ValueError(f"Unknown KLINE_STORAGE='{settings.storage_backend}'. Expected: sqlite, json")
