"""Application context: the explicitly built store, registry and service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ci_board import admin
from ci_board.adapters import ParserRegistry, load_adapters
from ci_board.compatibility import CompatibilityIndex
from ci_board.config import AppConfig
from ci_board.models import Server
from ci_board.service import SourceService
from ci_board.store import JsonStore, Store

logger = logging.getLogger(__name__)


@dataclass
class BoardContext:
    config: AppConfig
    store: Store
    registry: ParserRegistry
    index: CompatibilityIndex
    service: SourceService


def open_store(config: AppConfig) -> Store:
    if config.store.path:
        return JsonStore(config.store.path)
    return Store()


def build_context(
    config: AppConfig,
    adapters: Iterable[Any] = (),
    store: Optional[Store] = None,
) -> BoardContext:
    """Assemble everything a request handler needs.

    *adapters* (instances or classes) are registered before the ones named
    in the configuration.  The compatibility upsert runs to completion
    before the service is returned.
    """
    store = store if store is not None else open_store(config)

    registry = ParserRegistry(adapters)
    load_adapters(registry, [a.class_path for a in config.enabled_adapters])
    if not len(registry):
        logger.warning("No parsers registered, sources cannot be loaded")

    index = CompatibilityIndex(registry)
    try:
        index.sync(store)
    except Exception as exc:
        logger.error("Could not initialize compatibility records: %s", exc)
        raise

    for seed in config.servers:
        url = admin.normalize_url(seed.url)
        if store.find_one(Server, lambda s: s.url == url):
            continue
        admin.create_server(
            store,
            name=seed.name,
            url=seed.url,
            kind=seed.type,
            disabled=seed.disabled,
            arguments=seed.arguments,
        )

    service = SourceService(registry, store, concurrency=config.refresh.concurrency)
    return BoardContext(config=config, store=store, registry=registry, index=index, service=service)
