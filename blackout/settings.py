"""Settings persistence for Blackout sessions."""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

_BASE_DIR = Path(__file__).resolve().parent.parent
SETTINGS_PATH = _BASE_DIR / "settings.json"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

logger = logging.getLogger(__name__)


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


@dataclass
class Settings:
    """Session-wide defaults that authored content may override per node."""

    default_budget: int = 100
    equality_epsilon: float = 1e-5
    challenge_success_value: float = 1.0
    default_deadline: float = 5.0
    log_level: str = "WARNING"

    _LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

    def clamp(self) -> "Settings":
        self.default_budget = max(int(self.default_budget), 0)
        self.equality_epsilon = _clamp(float(self.equality_epsilon), 0.0, 1.0)
        self.challenge_success_value = float(self.challenge_success_value)
        self.default_deadline = _clamp(float(self.default_deadline), 0.1, 3600.0)

        level = str(self.log_level).upper()
        if level not in self._LOG_LEVELS:
            level = "WARNING"
        self.log_level = level
        return self

    def copy(self) -> "Settings":
        return Settings.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "Settings":
        if not isinstance(data, dict):
            return cls()

        def _as_float(key: str, default: float) -> float:
            try:
                return float(data.get(key, default))
            except (TypeError, ValueError):
                return default

        def _as_int(key: str, default: int) -> int:
            try:
                return int(data.get(key, default))
            except (TypeError, ValueError):
                return default

        settings = cls(
            default_budget=_as_int("default_budget", 100),
            equality_epsilon=_as_float("equality_epsilon", 1e-5),
            challenge_success_value=_as_float("challenge_success_value", 1.0),
            default_deadline=_as_float("default_deadline", 5.0),
            log_level=str(data.get("log_level", "WARNING")),
        )
        return settings.clamp()


def load_settings(path: Path | str = SETTINGS_PATH) -> Settings:
    """Read settings from ``path``; a missing or unreadable file gives defaults."""
    source = Path(path)
    if not source.exists():
        return Settings()
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read settings from %s: %s", source, exc)
        return Settings()
    return Settings.from_dict(data)


def save_settings(settings: Settings, path: Path | str = SETTINGS_PATH) -> Settings:
    """Write the clamped ``settings`` to ``path`` through a staged file.

    A failed write is logged and leaves any previous file untouched.
    """
    target = Path(path)
    sanitized = settings.copy().clamp()
    payload = json.dumps(sanitized.to_dict(), indent=2) + "\n"
    staged: Optional[Path] = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", delete=False, dir=target.parent, prefix=target.name, suffix=".tmp", encoding="utf-8"
        ) as handle:
            staged = Path(handle.name)
            handle.write(payload)
        os.replace(staged, target)
    except OSError as exc:
        logger.error("Could not save settings to %s: %s", target, exc)
        if staged is not None:
            staged.unlink(missing_ok=True)
    return sanitized


def configure_logging(level: str = "WARNING", stream=None) -> logging.Logger:
    """Attach one stream handler to the ``blackout`` logger."""
    root = logging.getLogger("blackout")
    if not root.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.WARNING))
    return root
