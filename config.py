import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        top_categories: int,
        recent_transactions: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.top_categories = top_categories
        self.recent_transactions = recent_transactions


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Europe/Berlin")
    top_categories = int(os.getenv("LEDGER_TOP_CATEGORIES", "3"))
    recent_transactions = int(os.getenv("LEDGER_RECENT_TRANSACTIONS", "5"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        top_categories=top_categories,
        recent_transactions=recent_transactions,
    )
