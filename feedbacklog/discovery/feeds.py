"""Feed catalogue loaded from YAML.

The catalogue maps groups to named feed urls::

    bbc:
      world: https://feeds.bbci.co.uk/news/world/rss.xml
      technology: https://feeds.bbci.co.uk/news/technology/rss.xml
    guardian:
      world: https://www.theguardian.com/world/rss
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import yaml

from feedbacklog.config import settings
from feedbacklog.errors import ConfigError


@dataclass(frozen=True)
class Feed:
    group: str
    name: str
    url: str

    def __str__(self) -> str:
        return f"{self.group}/{self.name}"


def load_feeds(path: Optional[Path] = None) -> list[Feed]:
    """Load every feed in the catalogue at *path* (defaults to ``settings.feeds_file``).

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or does not
            have the ``{group: {name: url}}`` shape.
    """
    config_path = Path(path or settings.feeds_file)
    if not config_path.exists():
        raise ConfigError(f"Feed catalogue not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping of groups")

    feeds: list[Feed] = []
    for group, entries in data.items():
        if not isinstance(entries, dict):
            raise ConfigError(f"{config_path}: group {group!r} must map names to urls")
        for name, url in entries.items():
            if not isinstance(url, str) or not url.strip():
                raise ConfigError(f"{config_path}: feed {group}/{name} has no url")
            feeds.append(Feed(group=str(group), name=str(name), url=url.strip()))
    return feeds


def search_feeds(
    feeds: Iterable[Feed],
    group: Optional[str] = None,
    name: Optional[str] = None,
) -> list[Feed]:
    """Narrow *feeds* to an exact group and/or name."""
    return [
        f for f in feeds
        if (group is None or f.group == group) and (name is None or f.name == name)
    ]


def list_groups(feeds: Iterable[Feed]) -> list[str]:
    """Return the distinct group names in catalogue order."""
    groups: list[str] = []
    for f in feeds:
        if f.group not in groups:
            groups.append(f.group)
    return groups
