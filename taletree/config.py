"""Runtime configuration read from the environment and the repo's .env file."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"

DEFAULT_MODEL = "gemini-2.5-flash-preview-09-2025"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"


class Settings(BaseModel):
    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 120.0
    data_dir: Path = DEFAULT_DATA_DIR
    host: str = "0.0.0.0"
    port: int = 13013
    log_level: str = "INFO"


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from os.environ after loading .env.

    A missing GEMINI_API_KEY is not an error here; generation calls fail
    at the transport step instead.
    """
    load_dotenv(env_file or ROOT / ".env")
    return Settings(
        api_key=os.getenv("GEMINI_API_KEY", ""),
        model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
        base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URL),
        timeout=float(os.getenv("LLM_TIMEOUT", "120")),
        data_dir=Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR))),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "13013")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
