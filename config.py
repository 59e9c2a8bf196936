import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        default_currency: str,
        log_level: str,
        seed: int,
    ) -> None:
        self.database_url = database_url
        self.default_currency = default_currency
        self.log_level = log_level
        self.seed = seed


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    default_currency = os.getenv("LEDGER_DEFAULT_CURRENCY", "INR").upper()
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    seed = int(os.getenv("LEDGER_SEED", "42"))
    return Settings(
        database_url=database_url,
        default_currency=default_currency,
        log_level=log_level,
        seed=seed,
    )
