"""YAML configuration loader and validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ci_board.service import DEFAULT_CONCURRENCY

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


@dataclass
class AdapterConfig:
    """One adapter to load, by dotted class path."""

    name: str
    class_path: str
    enabled: bool = True


@dataclass
class ServerSeed:
    """Server created at startup if its url is not stored yet."""

    name: str
    url: str
    type: str
    disabled: bool = False
    arguments: Dict[str, str] = field(default_factory=dict)


@dataclass
class StoreConfig:
    path: Optional[str] = None  # None keeps everything in memory


@dataclass
class RefreshConfig:
    concurrency: int = DEFAULT_CONCURRENCY


@dataclass
class AppConfig:
    """Top-level application configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    adapters: List[AdapterConfig] = field(default_factory=list)
    servers: List[ServerSeed] = field(default_factory=list)

    @property
    def enabled_adapters(self) -> List[AdapterConfig]:
        """Enabled adapters in declaration (registration) order."""
        return [a for a in self.adapters if a.enabled]


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load configuration from a YAML file, falling back to defaults."""
    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        logger.info("No config file at %s, using defaults", config_path)
        config = AppConfig()
    else:
        logger.info("Loading config from %s", config_path)
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        config = _parse_config(raw) if raw else AppConfig()

    _validate_config(config)
    return config


def _parse_config(raw: Dict[str, Any]) -> AppConfig:
    """Parse raw YAML dict into AppConfig."""
    config = AppConfig()

    if "store" in raw:
        st = raw["store"] or {}
        path = st.get("path")
        config.store = StoreConfig(path=str(path) if path else None)

    if "refresh" in raw:
        ref = raw["refresh"] or {}
        config.refresh = RefreshConfig(
            concurrency=int(ref.get("concurrency", DEFAULT_CONCURRENCY)),
        )

    for entry in raw.get("adapters") or []:
        config.adapters.append(
            AdapterConfig(
                name=str(entry.get("name", "")),
                class_path=str(entry.get("class", "")),
                enabled=entry.get("enabled", True),
            )
        )

    for entry in raw.get("servers") or []:
        config.servers.append(
            ServerSeed(
                name=str(entry["name"]),
                url=str(entry["url"]),
                type=str(entry["type"]),
                disabled=entry.get("disabled", False),
                arguments={str(k): str(v) for k, v in (entry.get("arguments") or {}).items()},
            )
        )

    return config


def _validate_config(config: AppConfig) -> None:
    """Validate config and raise on errors."""
    if config.refresh.concurrency < 1:
        raise ValueError(
            f"Config error: refresh concurrency must be >= 1, got {config.refresh.concurrency}"
        )

    for adapter in config.adapters:
        if not adapter.name:
            raise ValueError("Config error: adapter entry without a name")
        if not adapter.class_path:
            raise ValueError(f"Config error: adapter '{adapter.name}' has no class path")

    names = [a.name for a in config.adapters]
    if len(names) != len(set(names)):
        raise ValueError("Config error: duplicate adapter names")

    urls = [s.url for s in config.servers]
    if len(urls) != len(set(urls)):
        raise ValueError("Config error: duplicate server urls")

    logger.info(
        "Config validated: %d adapters (%d enabled), %d seeded servers, store -> %s",
        len(config.adapters),
        len(config.enabled_adapters),
        len(config.servers),
        config.store.path or "memory",
    )
