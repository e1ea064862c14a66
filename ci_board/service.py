"""Aggregation service: source discovery, card data and options retrieval."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from ci_board.adapters import ParserAdapter, ParserRegistry, adapter_name
from ci_board.cards import Options, normalize_card, normalize_options
from ci_board.errors import AdapterError, BoardError, UnresolvedAdapterError
from ci_board.models import Server, Source, SourceType
from ci_board.store import Store

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


@dataclass
class RefreshReport:
    """Outcome of one refresh pass."""

    created: List[Source] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)  # server name -> message
    skipped: List[str] = field(default_factory=list)  # disabled server names

    @property
    def ok(self) -> bool:
        return not self.errors


class SourceService:
    """Stateless operations over a fixed adapter snapshot and a store.

    The registry is copied at construction; registering
    adapters afterwards does not affect an existing service.
    """

    def __init__(
        self,
        registry: ParserRegistry,
        store: Store,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._registry = registry.copy()
        self._store = store
        self._concurrency = concurrency

    @property
    def adapters(self) -> List[ParserAdapter]:
        return self._registry.all_adapters()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh_sources(self) -> RefreshReport:
        """Discover sources on every known server and save the new ones.

        A failing server is logged and recorded in the report; the other
        servers are still processed.
        """
        report = RefreshReport()
        servers = self._store.find_all(Server)
        known: Set[Tuple[str, Optional[int]]] = {s.key for s in self._store.find_all(Source)}
        lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(self._concurrency)

        async def refresh_one(server: Server) -> None:
            async with semaphore:
                try:
                    await self._refresh_server(server, known, lock, report)
                except Exception as exc:
                    report.errors[server.name] = str(exc)
                    logger.error("Could not load sources of server %s: %s", server.name, exc)
                    logger.debug("Failed server: %r", server)

        tasks = []
        for server in servers:
            if server.disabled:
                logger.debug("Skipping disabled server %s", server.name)
                report.skipped.append(server.name)
                continue
            tasks.append(refresh_one(server))
        await asyncio.gather(*tasks)

        logger.info(
            "Refresh finished: %d new sources, %d server(s) failed",
            len(report.created),
            len(report.errors),
        )
        return report

    async def _refresh_server(
        self,
        server: Server,
        known: Set[Tuple[str, Optional[int]]],
        lock: asyncio.Lock,
        report: RefreshReport,
    ) -> None:
        adapter = self._registry.by_server_kind(server.type)
        if adapter is None:
            raise UnresolvedAdapterError(
                f"There are no available parsers to retrieve data from server of type {server.type}",
                server_kind=server.type,
            )

        arguments = self._store.arguments_of(server)
        candidates = await adapter.list_sources(server, arguments)
        logger.debug(
            "%s listed %d sources on %s", adapter_name(adapter), len(candidates), server.name
        )

        async with lock:
            for source in candidates:
                if source.server is not server and source.server.id != server.id:
                    logger.warning(
                        "%s returned source %s for another server, ignoring",
                        adapter_name(adapter),
                        source.address,
                    )
                    continue
                if source.key in known:
                    continue
                source.source_type = self._stored_source_type(source.source_type)
                self._store.save(source)
                known.add(source.key)
                report.created.append(source)
                logger.info("New source %s (%s) on %s", source.name, source.address, server.name)

    def _stored_source_type(self, source_type: Optional[SourceType]) -> Optional[SourceType]:
        """Swap an adapter-built SourceType for the stored record of that name."""
        if source_type is None or source_type.id is not None:
            return source_type
        stored = self._store.find_one(SourceType, lambda t: t.name == source_type.name)
        if stored is None:
            stored = self._store.save(SourceType(name=source_type.name))
        return stored

    # ------------------------------------------------------------------
    # Card data
    # ------------------------------------------------------------------

    async def get_source_data(self, sources: Sequence[Source], card_kind: str) -> List[Any]:
        """Fetch *card_kind* payloads for every source, in input order.

        All-or-nothing: an unsupported source or a failing adapter fails
        the whole call.
        """
        plan: List[Tuple[ParserAdapter, Source]] = []
        for source in sources:
            source_kind = source.type_name
            adapter = self._registry.by_source_and_card(source_kind, card_kind) if source_kind else None
            if adapter is None:
                raise UnresolvedAdapterError(
                    f'Source type "{source_kind}" is not supported for card "{card_kind}"!',
                    source_kind=source_kind,
                    card_kind=card_kind,
                )
            plan.append((adapter, source))

        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch(adapter: ParserAdapter, source: Source) -> Any:
            async with semaphore:
                payload = await _call_adapter(
                    adapter.fetch_card(card_kind, source), adapter, source
                )
            return normalize_card(card_kind, payload)

        return list(await asyncio.gather(*(fetch(a, s) for a, s in plan)))

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    async def get_options(self, source: Source) -> Options:
        source_kind = source.type_name
        adapter = self._registry.by_source_kind(source_kind) if source_kind else None
        if adapter is None:
            raise UnresolvedAdapterError(
                f'Source type "{source_kind}" is not supported!',
                source_kind=source_kind,
            )
        options = await _call_adapter(adapter.fetch_options(source), adapter, source)
        return normalize_options(options)


async def _call_adapter(call, adapter: ParserAdapter, source: Source) -> Any:
    """Await an adapter call, wrapping foreign exceptions as AdapterError."""
    try:
        return await call
    except BoardError:
        raise
    except Exception as exc:
        raise AdapterError(
            f"{adapter_name(adapter)} failed for source '{source.name}': {exc}"
        ) from exc
