import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        secret_key: str,
        session_cookie: str,
        session_max_age_secs: int,
        log_level: str,
        sql_echo: bool,
    ) -> None:
        self.database_url = database_url
        self.secret_key = secret_key
        self.session_cookie = session_cookie
        self.session_max_age_secs = session_max_age_secs
        self.log_level = log_level
        self.sql_echo = sql_echo


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    secret_key = os.getenv(
        "FINANCE_SECRET_KEY",
        "5f0c2b8e9d4a41c6b7e3a2d1f08c9b6e4d3a2f1e0c9b8a7d6e5f4c3b2a1d0e9f",
    )
    session_cookie = os.getenv("FINANCE_SESSION_COOKIE", "finance_session")
    session_max_age_secs = int(os.getenv("FINANCE_SESSION_MAX_AGE_SECS", "1209600"))
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    sql_echo = os.getenv("FINANCE_SQL_ECHO", "").lower() in {"1", "true", "yes"}
    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        session_cookie=session_cookie,
        session_max_age_secs=session_max_age_secs,
        log_level=log_level,
        sql_echo=sql_echo,
    )
