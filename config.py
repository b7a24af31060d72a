"""
config.py – Application configuration and constants.

This module defines AppConfig, a central container for:
  - Application-wide constants (entry file suffix, store directory name,
    password length limit, …).
  - The user configuration (journal directory, cipher format, PBKDF2
    iteration count) stored as a JSON file on disk and exposed through a
    simple dict-like interface.
  - Logger setup shared by every other module.

No other application module is imported here, so config.py sits at the bottom
of the dependency graph and can be safely imported by any other module.
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

import appdirs

# ---------------------------------------------------------------------------
# Application-level constants – these never change at runtime.
# ---------------------------------------------------------------------------

APP_NAME = "CryptJournal"

APP_VERSION = "1.1.0"

# Directory (relative to the working directory) holding one file per entry.
JOURNAL_DIR = "Journals"

# Extension of every entry's backing file.
JOURNAL_SUFFIX = ".journal"

# Maximum password length in characters; also the AES-128 key size in bytes.
MAX_PASSWORD_LENGTH = 16

# PBKDF2 work factor for the salted Fernet format.
KDF_ITERATIONS = 390_000

# Highest work factor accepted from an entry header or the settings file.
MAX_KDF_ITERATIONS = 10 * KDF_ITERATIONS

# ---------------------------------------------------------------------------
# Default values written to config.json on first run.
# ---------------------------------------------------------------------------
DEFAULT_CONFIG: dict = {
    # Where entries are stored; relative paths resolve against the cwd.
    "journal_dir": JOURNAL_DIR,
    # Format used for new writes: "legacy" (header-less AES block format,
    # readable by older installs) or "fernet" (salted, authenticated).
    "cipher": "legacy",
    "kdf_iterations": KDF_ITERATIONS,
}


class AppConfig:
    """
    Manages application configuration, file paths and logging.

    On instantiation the class:
      1. Resolves the OS-appropriate user-data directory.
      2. Derives the settings and log file paths from that directory.
      3. Sets up a rotating log handler.
      4. Loads (or falls back to) the JSON configuration file.

    Parameters
    ----------
    user_data_dir : str, optional
        Directory for config.json and app.log.  Defaults to the appdirs
        user-data directory for APP_NAME.

    Attributes
    ----------
    user_data_dir : str
        Absolute path of the directory that stores settings and logs.
    config_path : str
        JSON configuration file.
    log_path : str
        Rotating application log.
    data : dict
        The currently loaded configuration values (mutable at runtime).
    logger : logging.Logger
        Shared Python logger for the whole application.
    """

    def __init__(self, user_data_dir: Optional[str] = None) -> None:
        self.user_data_dir: str = self._get_user_data_dir(user_data_dir)

        self.config_path: str = os.path.join(self.user_data_dir, "config.json")
        self.log_path:    str = os.path.join(self.user_data_dir, "app.log")

        self.logger: logging.Logger = self._setup_logger()

        self.data: dict = self._load()

        self.logger.info("AppConfig initialised; data dir: %s", self.user_data_dir)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_user_data_dir(override: Optional[str] = None) -> str:
        """Return (and create if necessary) the user-data directory."""
        path = override or appdirs.user_data_dir(APP_NAME)
        os.makedirs(path, exist_ok=True)
        return os.path.abspath(path)

    def _setup_logger(self) -> logging.Logger:
        """
        Create and configure a rotating file logger for the whole application.

        The log rotates at 2 MB and keeps up to 3 backup files.
        Only one file handler is ever attached to the shared logger.
        """
        logger = logging.getLogger(APP_NAME)
        logger.setLevel(logging.DEBUG)

        if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
            handler = RotatingFileHandler(
                self.log_path,
                maxBytes=2_000_000,
                backupCount=3,
                encoding="utf-8",
            )
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s: %(message)s")
            )
            logger.addHandler(handler)

        return logger

    def _load(self) -> dict:
        """
        Read config.json from disk.

        Missing keys are back-filled from DEFAULT_CONFIG so that settings
        introduced in later versions are always present.  A missing or
        unreadable file yields a fresh copy of the defaults.
        """
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, "r", encoding="utf-8") as fh:
                    cfg: dict = json.load(fh)
                if not isinstance(cfg, dict):
                    raise ValueError("config.json does not hold an object")
                for key, value in DEFAULT_CONFIG.items():
                    cfg.setdefault(key, value)
                return cfg
        except (OSError, ValueError):
            self.logger.exception("Failed to load config; using defaults")

        return dict(DEFAULT_CONFIG)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the current configuration dictionary to disk as JSON."""
        with open(self.config_path, "w", encoding="utf-8") as fh:
            json.dump(self.data, fh, indent=2)
        self.logger.info("Config saved")

    def get(self, key: str, default=None):
        """Return a configuration value by key, or *default* if not found."""
        return self.data.get(key, default)

    def set(self, key: str, value) -> None:
        """
        Update a configuration value in memory.

        Call save() afterwards to persist the change to disk.
        """
        self.data[key] = value

    @property
    def journal_dir(self) -> str:
        """Absolute path of the entry store directory."""
        return os.path.abspath(self.get("journal_dir", JOURNAL_DIR))
