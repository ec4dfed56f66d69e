"""Runtime configuration loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

ENV_PREFIX = "PLAYWRIGHT_ACTIONS_"
BROWSER_TYPES = ("chromium", "firefox", "webkit")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerConfig:
    """Immutable process-level configuration."""

    browser_type: str = "chromium"
    headless: bool = False
    viewport_width: int = 1280
    viewport_height: int = 720
    action_timeout_ms: int = 30000
    navigation_timeout_ms: int = 30000
    response_timeout_ms: int = 30000
    console_log_limit: int = 1000
    response_body_limit: int = 65536
    max_html_length: int = 20000
    screenshots_dir: str = "~/Downloads"

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ServerConfig":
        """Build a config from a loose mapping, keeping defaults for bad values."""
        raw = data if isinstance(data, Mapping) else {}
        base = cls()
        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in raw or raw[f.name] is None:
                continue
            default = getattr(base, f.name)
            value = _coerce(raw[f.name], default)
            if value is None:
                logger.warning("Ignoring invalid config value %s=%r", f.name, raw[f.name])
                continue
            values[f.name] = value

        browser_type = str(values.get("browser_type", base.browser_type)).lower()
        if browser_type not in BROWSER_TYPES:
            logger.warning("Unsupported browser_type %r, using chromium", browser_type)
            browser_type = "chromium"
        values["browser_type"] = browser_type
        for name in ("viewport_width", "viewport_height", "console_log_limit", "response_body_limit"):
            if name in values:
                values[name] = max(1, int(values[name]))
        return replace(base, **values)

    @property
    def screenshots_path(self) -> Path:
        return Path(self.screenshots_dir).expanduser()


def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in {"1", "true", "yes", "on"}:
            return True
        if text in {"0", "false", "no", "off"}:
            return False
        return None
    if isinstance(default, int):
        try:
            return int(value)
        except Exception:
            return None
    return str(value)


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ServerConfig:
    """
    Load configuration from an optional YAML file plus environment overrides.

    Resolution order (later wins): defaults, YAML file (``path`` or
    ``PLAYWRIGHT_ACTIONS_CONFIG``), ``PLAYWRIGHT_ACTIONS_HEADLESS`` /
    ``PLAYWRIGHT_ACTIONS_BROWSER_TYPE``, explicit ``overrides``.
    """
    data: Dict[str, Any] = {}
    config_path = path or os.environ.get(f"{ENV_PREFIX}CONFIG")
    if config_path:
        file_path = Path(config_path).expanduser()
        if not file_path.exists():
            raise FileNotFoundError(f"Config file not found: {file_path}")
        loaded = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file must contain a mapping: {file_path}")
        section = loaded.get("playwright_actions")
        data.update(section if isinstance(section, dict) else loaded)

    for key in ("headless", "browser_type"):
        env_value = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if env_value:
            data[key] = env_value

    data.update(dict(overrides or {}))
    return ServerConfig.from_dict(data)
