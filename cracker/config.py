"""
Project configuration and ignore patterns.

Configuration is read from `<project>/.cracker/config.json`:

    {
        "ignore_modules": ["Repo", ".changeset", "re:^Ecto\\\\."],
        "format": "d2",
        "max_workers": 8
    }

Missing keys fall back to defaults; unknown keys are ignored.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

CONFIG_DIR = ".cracker"
CONFIG_FILE = "config.json"

OUTPUT_FORMATS = ("mermaid", "d2", "json")

# Prefix marking an ignore pattern as a regular expression
REGEX_PREFIX = "re:"


@dataclass
class CrackerConfig:
    """Settings for one project."""

    ignore_modules: list[str] = field(default_factory=list)
    format: str = "mermaid"
    max_workers: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "CrackerConfig":
        """Build a config from parsed JSON, validating each known key.

        Raises:
            ValueError: If a known key has the wrong type or value
        """
        config = cls()

        ignore = data.get("ignore_modules", config.ignore_modules)
        if not isinstance(ignore, list) or not all(isinstance(p, str) for p in ignore):
            raise ValueError("ignore_modules must be a list of strings")
        config.ignore_modules = list(ignore)

        fmt = data.get("format", config.format)
        if fmt not in OUTPUT_FORMATS:
            raise ValueError(f"format must be one of {', '.join(OUTPUT_FORMATS)}, got {fmt!r}")
        config.format = fmt

        workers = data.get("max_workers", config.max_workers)
        if workers is not None and (not isinstance(workers, int) or isinstance(workers, bool) or workers < 1):
            raise ValueError("max_workers must be a positive integer")
        config.max_workers = workers

        return config


def config_path(project_dir: str | Path) -> Path:
    return Path(project_dir) / CONFIG_DIR / CONFIG_FILE


def load_config(project_dir: str | Path) -> CrackerConfig:
    """Load project configuration, falling back to defaults.

    A missing file is normal. An unreadable or invalid file is reported as a
    warning and the defaults are used instead.
    """
    path = config_path(project_dir)
    if not path.exists():
        return CrackerConfig()

    try:
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            raise ValueError("top-level value must be an object")
        config = CrackerConfig.from_dict(data)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load {path}: {e}")
        return CrackerConfig()

    logger.debug(f"Loaded config from {path}")
    return config


class IgnoreFilter:
    """Match canonical signatures against ignore patterns.

    Plain patterns are substrings ("Repo", ".changeset", "/0"). Patterns
    prefixed with "re:" are regular expressions searched in the signature.
    """

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns = list(patterns)
        self._substrings: list[str] = []
        self._regexes: list[re.Pattern[str]] = []
        for pattern in self.patterns:
            if pattern.startswith(REGEX_PREFIX):
                try:
                    self._regexes.append(re.compile(pattern[len(REGEX_PREFIX):]))
                except re.error as e:
                    raise ValueError(f"Invalid ignore pattern {pattern!r}: {e}") from e
            else:
                self._substrings.append(pattern)

    def matches(self, signature: str) -> bool:
        return any(s in signature for s in self._substrings) or any(
            r.search(signature) for r in self._regexes
        )

    def __bool__(self) -> bool:
        return bool(self.patterns)
