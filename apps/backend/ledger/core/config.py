from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


_BACKEND_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    APP_NAME: str = "Household Ledger"
    ENV: str = "dev"

    # apps/backend/ledger.sqlite3 절대경로 (CWD와 무관)
    _default_db_path = _BACKEND_DIR / "ledger.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"
    # 기동 시 create_all (idempotent). 운영 DB는 alembic 사용 권장
    AUTO_CREATE_SCHEMA: bool = True

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "Asia/Shanghai"
    LOG_LEVEL: str = "INFO"

    # Attachments
    BLOB_DIR: str = str(_BACKEND_DIR / "blobs")
    BLOB_BASE_URL: str = "/blobs"
    MAX_ATTACHMENT_BYTES: int = 10 * 1024 * 1024
    ALLOWED_ATTACHMENT_PREFIXES: list[str] = [
        "transactions/",
        "notes/",
        "giftbooks/",
        "loans/",
        "loan-repayments/",
        "gifts-given/",
    ]
    ALLOWED_ATTACHMENT_TYPES: list[str] = ["image/*", "application/pdf"]

    DEFAULT_CURRENCY: str = "CNY"
    DEFAULT_ITEM_UNIT: str = "件"

    # Without a session header, fall back to the first user (local development only)
    DEMO_USER_FALLBACK: bool = False
    # Gift group deletion leaves attachment blobs in place unless enabled
    RELEASE_GIFT_GROUP_ATTACHMENTS: bool = False

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="LEDGER_", case_sensitive=False)


settings = Settings()
