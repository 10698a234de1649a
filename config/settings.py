import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load biến môi trường trong .env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _float(name: str, default: float) -> float:
    # biến rỗng coi như chưa set
    value = os.getenv(name)
    return float(value) if value else default


class Settings:
    # Địa chỉ của Submission / Status endpoint (frontend dùng)
    PREDICTIONS_BASE_URL: str = os.getenv("PREDICTIONS_BASE_URL") or "http://127.0.0.1:8000"

    REQUEST_TIMEOUT: float = _float("REQUEST_TIMEOUT", 60.0)  # giây

    # Service gốc mà proxy trong backend/app.py gọi tới
    UPSTREAM_API_URL: str = os.getenv("UPSTREAM_API_URL") or "https://api.replicate.com/v1"
    UPSTREAM_MODEL: str = os.getenv("UPSTREAM_MODEL") or "black-forest-labs/flux-schnell"

    LOG_LEVEL: str = os.getenv("LOG_LEVEL") or "INFO"


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
