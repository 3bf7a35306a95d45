"""
Load the optional `config/monitor.yaml` (or `GIZI_CONFIG`) with `${ENV}` expansion.

Recognised sections::

    search_keywords: [gizi, stunting, ...]
    quality:
      twitter:
        min_length: 20
        quality_threshold: 0.6
        weights: {bot: 0.6}
      youtube: {...}
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "monitor.yaml"

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def load_monitor_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    config_path = Path(path) if path else Path(os.getenv("GIZI_CONFIG", str(DEFAULT_CONFIG_PATH)))
    if not config_path.exists():
        logger.warning("monitor config not found at %s; using built-in defaults", config_path)
        return {}
    raw = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        logger.error("monitor config at %s is not a mapping; ignoring it", config_path)
        return {}
    return _expand_env(data)


def _expand_env(data: Dict[str, Any]) -> Dict[str, Any]:
    def replace(value: Any) -> Any:
        if isinstance(value, str):
            return _ENV_PATTERN.sub(lambda match: os.getenv(match.group(1), ""), value)
        if isinstance(value, dict):
            return {k: replace(v) for k, v in value.items()}
        if isinstance(value, list):
            return [replace(item) for item in value]
        return value

    return replace(data)  # type: ignore[return-value]


def quality_overrides(config: Dict[str, Any], platform: str) -> Dict[str, Any]:
    """Per-platform quality rule overrides, or an empty dict."""
    section = (config.get("quality") or {}).get(platform) or {}
    return dict(section) if isinstance(section, dict) else {}


def configured_keywords(config: Dict[str, Any]) -> List[str]:
    keywords = config.get("search_keywords") or []
    return [str(keyword).strip() for keyword in keywords if str(keyword).strip()]
