import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        db_path: Path,
        data_dir: Path,
        log_file: Path,
        log_level: str,
    ) -> None:
        self.db_path = db_path
        self.data_dir = data_dir
        self.log_file = log_file
        self.log_level = log_level

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"


def _ensure_data_dir() -> Path:
    default = Path.home() / ".local" / "share" / "pocketledger"
    root = Path(os.getenv("POCKETLEDGER_DATA_DIR", str(default))).expanduser().resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    # Allow override with environment variable for testing
    db_file = os.getenv("POCKETLEDGER_DB")
    db_path = Path(db_file) if db_file else data_dir / "ledger.sqlite"
    log_file = Path(os.getenv("POCKETLEDGER_LOG_FILE", str(data_dir / "pocketledger.log")))
    log_level = os.getenv("POCKETLEDGER_LOG_LEVEL", "INFO")
    return Settings(
        db_path=db_path,
        data_dir=data_dir,
        log_file=log_file,
        log_level=log_level,
    )
