# codegraph_service/src/core/config.py
"""
Service configuration.

All settings come from environment variables so the service runs the same
way in Docker, CI and a local shell.
"""

import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./codegraph.db")
DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

DEFAULT_BRANCH = os.getenv("CODEGRAPH_DEFAULT_BRANCH", "main")
DEFAULT_MAX_DEPTH = int(os.getenv("CODEGRAPH_DEFAULT_MAX_DEPTH", "2"))
MIN_DEPTH = 1
MAX_DEPTH = 5

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
