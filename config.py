import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        page_size: int,
        max_page_size: int,
        query_backend: str,
        week_start: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.page_size = page_size
        self.max_page_size = max_page_size
        self.query_backend = query_backend
        self.week_start = week_start


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "America/Argentina/Buenos_Aires")
    session_secret = os.getenv(
        "LEDGER_SESSION_SECRET",
        "4f1c0b7e9a2d63c58e1f0a7b3d9c2e6f5a8b1c4d7e0f3a6b9c2d5e8f1a4b7c0d",
    )
    page_size = int(os.getenv("LEDGER_PAGE_SIZE", "10"))
    max_page_size = int(os.getenv("LEDGER_MAX_PAGE_SIZE", "100"))
    query_backend = os.getenv("LEDGER_QUERY_BACKEND", "store").lower()
    # 0 = Monday ... 6 = Sunday
    week_start = int(os.getenv("LEDGER_WEEK_START", "6"))
    if query_backend not in {"store", "memory"}:
        raise ValueError(f"Unsupported query backend: {query_backend}")
    if not 0 <= week_start <= 6:
        raise ValueError("LEDGER_WEEK_START must be between 0 and 6")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        page_size=page_size,
        max_page_size=max_page_size,
        query_backend=query_backend,
        week_start=week_start,
    )
