"""Configuration management for the nodeprep application.

Run settings (versions, paths, timeouts) live in
``nodeprep.modules.node.config.PrepConfig`` and also honour ``NODEPREP_*``
variables; importing this module makes values from a ``.env`` file visible
to both.
"""
import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Process-level settings with sensible defaults."""

    # Run configuration file (YAML); default search paths are used when empty
    CONFIG_PATH: Optional[str] = os.getenv("NODEPREP_CONFIG") or None

    # Logging
    LOG_LEVEL: str = os.getenv("NODEPREP_LOG_LEVEL", "INFO").upper()

    @classmethod
    def log_level(cls, debug: bool = False) -> str:
        """Return the effective log level name."""
        return "DEBUG" if debug else cls.LOG_LEVEL
