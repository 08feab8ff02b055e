"""Launcher configuration."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_BACKEND_PORT = 5001
DEFAULT_FRONTEND_PORT = 5173
DEFAULT_HOST = "0.0.0.0"

SETTLE_DELAY = 1.5  # seconds between backend and frontend start in dev mode
TERMINATE_GRACE_PERIOD = 0.5  # seconds before a graceful stop escalates to a kill
KILL_TIMEOUT = 5  # seconds to wait for a killed child to be reaped
POLL_INTERVAL = 1.0  # seconds between supervisor liveness checks
COMMAND_TIMEOUT = 5  # seconds for lsof / netstat / taskkill

# Imported inside the venv to decide whether the backend can start
BACKEND_REQUIRED_MODULES = ("fastapi", "uvicorn")

_UVICORN_LOG_LEVELS = {"critical", "error", "warning", "info", "debug", "trace"}


class Settings(BaseSettings):
    """Launcher settings loaded from environment variables and ``.env``."""

    # Backend
    port: int = Field(DEFAULT_BACKEND_PORT, ge=1, le=65535)
    host: str = DEFAULT_HOST
    log_level: str = "info"
    ds2api_admin_key: str = "ds2api"
    backend_app: str = "app:app"

    # Frontend (Vite dev server)
    frontend_port: int = Field(DEFAULT_FRONTEND_PORT, ge=1, le=65535)

    # Layout
    project_root: Path = Path(".")
    venv_name: str = ".venv"
    webui_name: str = "webui"
    requirements_name: str = "requirements.txt"

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in _UVICORN_LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {', '.join(sorted(_UVICORN_LOG_LEVELS))}"
            )
        return level

    @field_validator("project_root")
    @classmethod
    def _resolve_root(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def venv_dir(self) -> Path:
        return self.project_root / self.venv_name

    @property
    def webui_dir(self) -> Path:
        return self.project_root / self.webui_name

    @property
    def requirements_file(self) -> Path:
        return self.project_root / self.requirements_name

    @property
    def has_frontend(self) -> bool:
        return self.webui_dir.is_dir()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
