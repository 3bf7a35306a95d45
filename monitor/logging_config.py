"""
Process-wide logging setup used by the CLI entry point.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_FILE = Path("logs") / "gizi_monitor.log"

_CONFIGURED_MARKER = "_gizi_monitor_configured"


def configure_logging(level: Union[int, str] = logging.INFO, log_file: Optional[Path] = DEFAULT_LOG_FILE) -> None:
    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root.setLevel(level)
    if getattr(root, _CONFIGURED_MARKER, False):
        return

    formatter = logging.Formatter(LOG_FORMAT)
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    root.addHandler(stream)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as exc:
            root.warning("File logging disabled (%s): %s", log_file, exc)
        else:
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    # urllib3 and apscheduler are chatty at INFO
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    setattr(root, _CONFIGURED_MARKER, True)
