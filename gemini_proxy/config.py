import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from gemini_proxy.errors import ConfigurationError


STATIC_DIR = Path(__file__).resolve().parent / "static"

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-pro"


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once at startup and injected into the app."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    request_timeout_seconds: float = 10.0
    max_retries: int = 3
    retry_delay_seconds: float = 2.0
    host: str = "0.0.0.0"
    port: int = 3000
    log_dir: str | None = None
    static_dir: str = str(STATIC_DIR)

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        load_dotenv(env_file)
        return cls(
            api_key=os.getenv("GEMINI_API_KEY", "").strip(),
            base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
            request_timeout_seconds=float(os.getenv("GEMINI_TIMEOUT_SECONDS", "10")),
            max_retries=int(os.getenv("GEMINI_MAX_RETRIES", "3")),
            retry_delay_seconds=float(os.getenv("GEMINI_RETRY_DELAY_SECONDS", "2.0")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_dir=os.getenv("LOG_DIR") or None,
        )

    @property
    def api_key_present(self) -> bool:
        return bool(self.api_key)

    def require_api_key(self) -> None:
        if not self.api_key_present:
            raise ConfigurationError(
                "GEMINI_API_KEY is not set. Add it to the environment or a .env file."
            )

    def __repr__(self):
        # keep the key out of logs and tracebacks
        return (
            f"Settings(model={self.model}, base_url={self.base_url}, "
            f"api_key={'set' if self.api_key_present else 'missing'}, port={self.port})"
        )
