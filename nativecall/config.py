"""
Environment-driven settings for nativecall.

All settings come from environment variables so scripts, tests and the CLI
can redirect the library lookup and the build output without code changes.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_LIBRARY_PATH = "NATIVECALL_LIBRARY_PATH"
ENV_BUILD_DIR = "NATIVECALL_BUILD_DIR"
ENV_STRICT = "NATIVECALL_STRICT"
ENV_LOG_LEVEL = "NATIVECALL_LOG_LEVEL"

DEFAULT_BUILD_DIR = os.path.join("build", "nativecall")
DEFAULT_DESCRIPTION_FILE = "nativecall.toml"

_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class Settings:
    """Resolved configuration.

    Attributes:
        library_path: Explicit shared library path, if configured
        build_dir: Directory that receives compiled artifacts
        strict: Range-check scalar arguments before calling native code
        log_level: Log level name used by the CLI
    """
    library_path: Optional[str] = None
    build_dir: str = DEFAULT_BUILD_DIR
    strict: bool = True
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Settings instance
        """
        env = os.environ if environ is None else environ

        strict_raw = env.get(ENV_STRICT)
        strict = True
        if strict_raw is not None:
            strict = strict_raw.strip().lower() not in _FALSE_VALUES

        log_level = env.get(ENV_LOG_LEVEL, "WARNING").strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            logger.warning(f"Ignoring unknown log level {log_level!r}")
            log_level = "WARNING"

        settings = cls(
            library_path=env.get(ENV_LIBRARY_PATH) or None,
            build_dir=env.get(ENV_BUILD_DIR) or DEFAULT_BUILD_DIR,
            strict=strict,
            log_level=log_level,
        )
        logger.debug(f"Loaded settings: {settings}")
        return settings

    @property
    def build_path(self) -> Path:
        """Build directory as a Path."""
        return Path(self.build_dir)
