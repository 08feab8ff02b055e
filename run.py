#!/usr/bin/env python3
"""
DS2API - Launcher

Starts, stops and bootstraps the DS2API backend and its admin UI from a single
command, with an interactive menu when run without arguments.

Usage:
    python run.py              # Interactive menu
    python run.py dev          # Development mode (backend + frontend)
    python run.py prod         # Production mode (backend only, no reload)
    python run.py backend      # Backend only (development mode)
    python run.py frontend     # Frontend only
    python run.py build        # Build the frontend
    python run.py install      # Install all dependencies (creates .venv)
    python run.py stop         # Stop services listening on the configured ports
    python run.py status       # Show service status

Environment Variables:
    - PORT: Backend port (default 5001)
    - FRONTEND_PORT: Frontend dev server port (default 5173)
    - HOST: Backend bind address (default 0.0.0.0)
    - LOG_LEVEL: Backend log level (default info)
    - DS2API_ADMIN_KEY: Admin key passed to the backend (default ds2api)
"""

import os
import sys
from pathlib import Path

if __name__ == '__main__':
    # Ensure we're in the project root directory
    script_dir = Path(__file__).parent.resolve()
    os.chdir(script_dir)
    sys.path.insert(0, str(script_dir))

    from launcher.cli import main

    sys.exit(main(project_root=script_dir))
