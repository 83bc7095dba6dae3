"""Настройки витрины из переменных окружения и файла .env."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: Optional[str] = None) -> Optional[str]:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    api_token: str
    api_timeout: float
    db_path: str
    payment_settle_delay: float
    payment_display_delay: float
    tracking_interval: float
    customer_email: str
    package_id: str
    default_area: str
    bot_token: str
    webapp_url: str


def load_settings() -> Settings:
    """Собрать настройки из окружения (.env подхватывается при импорте модуля)."""
    return Settings(
        api_base_url=_get_env("QM_API_BASE_URL", "NEXT_PUBLIC_API_BASE_URL", default="") or "",
        api_token=_get_env("QM_API_TOKEN", default="") or "",
        api_timeout=_get_float("QM_API_TIMEOUT", default=10.0),
        db_path=_get_env("QM_DB_PATH", default=str(ROOT_DIR / "data" / "storefront.db")) or "",
        payment_settle_delay=_get_float("QM_PAYMENT_SETTLE_DELAY", default=3.0),
        payment_display_delay=_get_float("QM_PAYMENT_DISPLAY_DELAY", default=2.0),
        tracking_interval=_get_float("QM_TRACKING_INTERVAL", default=30.0),
        customer_email=_get_env("QM_CUSTOMER_EMAIL", default="user@example.com") or "",
        package_id=_get_env("QM_PACKAGE_ID", default="weekly-package") or "",
        default_area=_get_env("QM_DEFAULT_AREA", default="Yaba") or "Yaba",
        bot_token=_get_env("TELEGRAM_BOT_TOKEN", "BOT_TOKEN", default="") or "",
        webapp_url=_get_env("WEBAPP_URL", default="http://localhost:8000") or "",
    )


settings = load_settings()
