# -*- coding: utf-8 -*-
"""Config management (JSON on disk) and logging setup."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional
import json
import logging
import os
import sys

import structlog

from .custodian import KEY_ALIAS
from .db import DB_PATH

APP_NAME = "nousguard"

DEFAULT_CONFIG: Dict[str, object] = {
    "db_path": DB_PATH,
    "keystore_path": "nousguard_keys.sqlite3",
    "key_alias": KEY_ALIAS,
    "init_max_attempts": 3,
    "init_retry_delay": 0.5,
    "log_level": "INFO",
    "log_file": "nousguard.log",
}

# Environment always wins over the file
ENV_OVERRIDES = {
    "NOUSGUARD_DB": "db_path",
    "NOUSGUARD_KEYSTORE": "keystore_path",
    "NOUSGUARD_LOG_LEVEL": "log_level",
    "NOUSGUARD_LOG_FILE": "log_file",
}

def _config_dir() -> Path:
    """Return the config directory path for this platform."""
    if os.name == "nt":
        base = os.environ.get("APPDATA", os.path.expanduser("~\\AppData\\Roaming"))
        return Path(base) / APP_NAME
    base = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(base) / APP_NAME

def _config_path() -> Path:
    return _config_dir() / "config.json"

def load_config() -> Dict[str, object]:
    """Load the merged configuration (defaults + file + environment)."""
    path = _config_path()
    merged = json.loads(json.dumps(DEFAULT_CONFIG))
    if not path.exists():
        save_config(DEFAULT_CONFIG)
    else:
        with path.open("r", encoding="utf-8") as f:
            merged.update(json.load(f))
    for env_name, cfg_key in ENV_OVERRIDES.items():
        if os.environ.get(env_name):
            merged[cfg_key] = os.environ[env_name]
    return merged

def save_config(cfg: Dict[str, object]) -> None:
    """Persist *cfg* to the JSON config file."""
    _config_dir().mkdir(parents=True, exist_ok=True)
    with _config_path().open("w", encoding="utf-8") as f:
        json.dump(cfg, f, indent=2)


# ---------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------

def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure structlog, filtered at *level*.

    Output goes to *log_file* when given (the TUI owns the terminal),
    otherwise to stderr.
    """
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    if log_file:
        Path(log_file).expanduser().parent.mkdir(parents=True, exist_ok=True)
        stream = open(Path(log_file).expanduser(), "a", encoding="utf-8")
    else:
        stream = sys.stderr
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
    )
