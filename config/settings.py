import json
import os
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

# Load environment variables from .env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _extra_input() -> Dict[str, Any]:
    raw = os.getenv("PROVIDER_EXTRA_INPUT")
    if not raw:
        return {"safety_tolerance": 2, "prompt_upsampling": True}
    return json.loads(raw)


class Settings:
    PROVIDER_API_TOKEN: str | None = os.getenv("PROVIDER_API_TOKEN")

    PROVIDER_BASE_URL: str = os.getenv("PROVIDER_BASE_URL", "https://api.replicate.com/v1")
    PROVIDER_MODEL: str = os.getenv("PROVIDER_MODEL", "black-forest-labs/flux-1.1-pro")
    # Set to use the version-scoped /predictions endpoint instead of the model one
    PROVIDER_MODEL_VERSION: str | None = os.getenv("PROVIDER_MODEL_VERSION")
    PROVIDER_AUTH_SCHEME: str = os.getenv("PROVIDER_AUTH_SCHEME", "Bearer")
    PROVIDER_EXTRA_INPUT: Dict[str, Any] = _extra_input()

    OUTPUT_QUALITY: int = int(os.getenv("OUTPUT_QUALITY", "90"))
    NUM_OUTPUTS: int = int(os.getenv("NUM_OUTPUTS", "3"))

    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "2.0"))  # seconds
    MAX_POLL_ATTEMPTS: int = int(os.getenv("MAX_POLL_ATTEMPTS", "60"))
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "60.0"))

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
    SESSION_TTL: int = int(os.getenv("SESSION_TTL", "3600"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    BACKEND_URL: str = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")

settings = Settings()
