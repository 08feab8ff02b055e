"""Descriptors for the two services the launcher manages."""

from launcher.config import Settings
from launcher.models import ServiceDescriptor, ServiceKind
from launcher.platform_ops import PlatformProcessOps

BACKEND = "backend"
FRONTEND = "frontend"


def backend_descriptor(settings: Settings, ops: PlatformProcessOps) -> ServiceDescriptor:
    """uvicorn serving the API from the project's venv."""
    python = ops.venv_executable(settings.venv_dir, "python")
    return ServiceDescriptor(
        name=BACKEND,
        kind=ServiceKind.BACKEND,
        command=(
            str(python),
            "-m", "uvicorn",
            settings.backend_app,
            "--host", settings.host,
            "--port", str(settings.port),
            "--log-level", settings.log_level,
        ),
        working_directory=settings.project_root,
        listen_port=settings.port,
        environment_overrides={"DS2API_ADMIN_KEY": settings.ds2api_admin_key},
        dev_mode_extra_args=("--reload", "--reload-dir", str(settings.project_root)),
    )


def frontend_descriptor(settings: Settings, ops: PlatformProcessOps) -> ServiceDescriptor:
    """Vite dev server started through ``npm run dev``."""
    return ServiceDescriptor(
        name=FRONTEND,
        kind=ServiceKind.FRONTEND,
        command=(ops.npm_command, "run", "dev", "--", "--port", str(settings.frontend_port)),
        working_directory=settings.webui_dir,
        listen_port=settings.frontend_port,
    )
