from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from tui_chat.events import DEFAULT_PAGE_SIZE

BASE_DIR = Path.home() / ".tui_chat"
DEFAULT_LOG_FILE = BASE_DIR / "tui_chat.log"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class AppConfig:
    base_url: str
    token: str
    page_size: int
    render_hz: float
    tick_s: float
    mouse: bool
    paste: bool
    log_file: Path
    log_level: str
    demo: bool = False

    def with_overrides(self, **overrides: Any) -> "AppConfig":
        """Return a copy with every non-``None`` override applied."""

        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        updated = replace(self, **changes)
        _validate(updated)
        return updated


def _parse_positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be positive")
    return parsed


def _parse_positive_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be positive")
    return parsed


def _parse_bool01(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    if raw not in {"0", "1"}:
        raise ValueError(f"{name} must be 0 or 1")
    return raw == "1"


def _validate(config: AppConfig) -> None:
    if config.page_size <= 0:
        raise ValueError("page size must be positive")
    if config.render_hz <= 0 or config.tick_s <= 0:
        raise ValueError("render rate and tick interval must be positive")
    if config.log_level not in LOG_LEVELS:
        raise ValueError(f"log level must be one of {', '.join(sorted(LOG_LEVELS))}")


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    if environ is None:
        environ = os.environ
    log_file = environ.get("TUI_CHAT_LOG_FILE") or str(DEFAULT_LOG_FILE)
    config = AppConfig(
        base_url=environ.get("TUI_CHAT_BASE_URL", "http://localhost:8787"),
        token=environ.get("TUI_CHAT_TOKEN", ""),
        page_size=_parse_positive_int(environ, "TUI_CHAT_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        render_hz=_parse_positive_float(environ, "TUI_CHAT_RENDER_HZ", 20.0),
        tick_s=_parse_positive_float(environ, "TUI_CHAT_TICK_S", 1.0),
        mouse=_parse_bool01(environ, "TUI_CHAT_MOUSE", True),
        paste=_parse_bool01(environ, "TUI_CHAT_PASTE", True),
        log_file=Path(log_file).expanduser(),
        log_level=environ.get("TUI_CHAT_LOG_LEVEL", "INFO").upper(),
    )
    _validate(config)
    return config
