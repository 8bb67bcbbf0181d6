from __future__ import annotations

import sys
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record
else:  # pragma: no cover - runtime fallback for typing-only import
    Record = dict[str, Any]  # type: ignore[assignment]

DEFAULT_LEVEL_KEY = "default"

STDERR_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {name} - {message}"


def configure_logging(
    *,
    base_level: str = "INFO",
    module_levels: Mapping[str, str] | None = None,
    log_file: Path | None = None,
    rotation: str = "06:00",
    retention: str = "10 days",
) -> None:
    """Route skill-agent logs to stderr, or to a rotated ``log_file`` when one is given.

    ``module_levels`` maps dotted module prefixes (``skill_agent.skills``) to a
    minimum level; the key ``default`` replaces ``base_level``.

    Raises:
        ValueError: If a level name is unknown to loguru
    """
    levels = ModuleLevels(base_level, module_levels)

    logger.remove()
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="TRACE",  # thresholds live in the filter
            rotation=rotation,
            retention=retention,
            filter=levels,
        )
    else:
        logger.add(sys.stderr, level="TRACE", format=STDERR_FORMAT, filter=levels)
    logger.enable("skill_agent")
    logger.debug("Configured log levels: {levels}", levels=levels.as_dict())


def level_no(level_name: str) -> int:
    try:
        return logger.level(level_name.strip().upper()).no
    except ValueError as exc:
        raise ValueError(f"Invalid log level '{level_name}'") from exc


class ModuleLevels:
    """Loguru filter keeping records at or above the level of their module.

    The longest matching prefix of the record's module name decides the
    threshold. Matching ignores case.
    """

    def __init__(self, base_level: str, overrides: Mapping[str, str] | None = None) -> None:
        self.default = level_no(base_level)
        self._prefixes: list[tuple[str, int]] = []
        for module, level_name in (overrides or {}).items():
            key = module.strip().rstrip(".").lower()
            if not key or key == DEFAULT_LEVEL_KEY:
                self.default = level_no(level_name)
            else:
                self._prefixes.append((key, level_no(level_name)))
        self._prefixes.sort(key=lambda item: len(item[0]), reverse=True)

    def threshold(self, module: str | None) -> int:
        if module:
            module = module.lower()
            for prefix, no in self._prefixes:
                if module == prefix or module.startswith(prefix + "."):
                    return no
        return self.default

    def as_dict(self) -> dict[str, int]:
        return {DEFAULT_LEVEL_KEY: self.default, **dict(self._prefixes)}

    def __call__(self, record: Record) -> bool:
        return record["level"].no >= self.threshold(record["name"])
