# emr_forms/core/config.py
import os
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "EMR Form Engine")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ---------- Form engine ----------
    # older drafts stored answers under "group.field" / bare field keys
    EMR_LEGACY_DOTTED_KEYS: bool = _flag("EMR_LEGACY_DOTTED_KEYS", "true")
    EMR_MAX_SECTIONS: int = int(os.getenv("EMR_MAX_SECTIONS", "60"))
    EMR_MAX_FIELDS: int = int(os.getenv("EMR_MAX_FIELDS", "1200"))  # huge case sheets
    EMR_KEY_MAX_LEN: int = int(os.getenv("EMR_KEY_MAX_LEN", "60"))


settings = Settings()
