# clinicore/core/config.py
import os
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Clinicore Practice API")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- MySQL ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "clinicore_user")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "clinicore")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "clinicore")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # DATABASE_URL wins over the MySQL parts (tests use sqlite://)
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL") or (
        f"mysql+{DB_DRIVER}://{quote_plus(MYSQL_USER)}:{quote_plus(MYSQL_PASSWORD)}"
        f"@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DB}?charset=utf8mb4")
    SQL_ECHO: bool = _flag("SQL_ECHO")

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    REFRESH_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("REFRESH_TOKEN_EXPIRE_MINUTES", str(7 * 24 * 60)))

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ---------- Inventory ----------
    INVENTORY_EXPIRING_SOON_DAYS: int = int(
        os.getenv("INVENTORY_EXPIRING_SOON_DAYS", "30"))

    # ---------- Manual payments ----------
    PAYMENT_REVIEWER_ROLES: List[str] = _split_csv(
        os.getenv(
            "PAYMENT_REVIEWER_ROLES",
            "super_admin,clinic_admin,finance_admin",
        ))

    @property
    def is_sqlite(self) -> bool:
        return self.SQLALCHEMY_DATABASE_URI.startswith("sqlite")


settings = Settings()
