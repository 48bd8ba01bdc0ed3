import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Storage
    db_file: str = os.getenv("VAYMN_DB_FILE", "vaymn.db")
    seed_demo_data: bool = _env_flag("SEED_DEMO_DATA", "True")

    # Lending rules
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "7"))
    fine_per_day: int = int(os.getenv("FINE_PER_DAY", "5"))

    # Gemini (book details enrichment)
    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    gemini_base_url: str = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
    gemini_timeout: float = float(os.getenv("GEMINI_TIMEOUT", "15"))
    enable_ai_features: bool = _env_flag("ENABLE_AI_FEATURES", "True")

    # Cover uploads are stored inline, keep them small
    cover_max_width: int = int(os.getenv("COVER_MAX_WIDTH", "400"))
    cover_jpeg_quality: int = int(os.getenv("COVER_JPEG_QUALITY", "80"))
    placeholder_cover_url: str = os.getenv(
        "PLACEHOLDER_COVER_URL", "https://via.placeholder.com/300x450?text=No+Cover"
    )

    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Application
    app_name: str = os.getenv("APP_NAME", "VAYMN Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
