import json
import logging
from pathlib import Path

from pydantic_settings import BaseSettings
from functools import lru_cache

_config_logger = logging.getLogger(__name__)

_OVERRIDES_FILE = Path("clouddata.json")
_PACKAGE_ROOT = Path(__file__).resolve().parents[1]
_ENV_FILES = (
    _PACKAGE_ROOT / ".env",
    ".env",
)
_OVERRIDABLE_KEYS = frozenset({
    "service_uri",
    "catalog_uris",
    "auto_apply_changes",
})


class Settings(BaseSettings):
    """Client settings loaded from CLOUDDATA_* environment variables."""

    # Service connection
    service_uri: str = "http://localhost:8810/CustomerApp"
    catalog_uris: list[str] = []
    login_path: str = "/static/home.html"
    request_timeout: float = 30.0

    # Authentication: "anonymous" | "basic" | "bearer"
    authentication_model: str = "anonymous"
    client_id: str = ""
    client_secret: str = ""
    access_token: str = ""

    # Change tracking: commit change-sets automatically after a successful save
    auto_apply_changes: bool = True

    # Logging: per-category log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_level: str = "INFO"              # Root / app-wide
    log_level_http: str = "WARNING"      # httpx / httpcore, outbound HTTP
    log_level_memory: str = "INFO"       # records, tables, datasets
    log_level_sync: str = "INFO"         # save pipeline and cloud data objects

    model_config = {
        "env_prefix": "CLOUDDATA_",
        "env_file": _ENV_FILES,
        "env_file_encoding": "utf-8",
    }

    def model_post_init(self, __context: object) -> None:
        """Merge runtime overrides from clouddata.json into the settings."""
        if _OVERRIDES_FILE.exists():
            try:
                overrides = json.loads(_OVERRIDES_FILE.read_text("utf-8"))
            except (OSError, ValueError) as exc:
                _config_logger.warning("Could not load settings overrides: %s", exc)
                return
            for key in _OVERRIDABLE_KEYS:
                if key in overrides:
                    object.__setattr__(self, key, overrides[key])


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance, reads .env once."""
    return Settings()
