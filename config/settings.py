import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from config/.env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


class Settings:
    GEMINI_API_URL: str = os.getenv(
        "GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta"
    )
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-image-preview")

    GEMINI_API_KEY: str | None = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")

    CONCURRENCY_LIMIT: int = int(os.getenv("CONCURRENCY_LIMIT", "2"))
    MAX_ATTEMPTS: int = int(os.getenv("MAX_ATTEMPTS", "3"))
    INITIAL_RETRY_DELAY: float = float(os.getenv("INITIAL_RETRY_DELAY", "1.0"))  # seconds
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "120"))


settings = Settings()
