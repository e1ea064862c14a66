"""Entity store: in-memory records with an optional JSON file behind them."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from ci_board.errors import PersistenceError
from ci_board.models import (
    CardType,
    Compatibility,
    Server,
    ServerArgument,
    Source,
    SourceType,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENTITY_KINDS = (Server, SourceType, CardType, Compatibility, Source)


class Store:
    """Key-addressable store for servers, sources and type records.

    ``find_all``/``find_one`` take an optional predicate.  ``save`` inserts
    or updates by id and enforces unique constraints; ``remove`` applies
    the cascade rules.  Server arguments live on their server.
    """

    def __init__(self) -> None:
        self._tables: Dict[type, Dict[int, Any]] = {kind: {} for kind in ENTITY_KINDS}
        self._next_id: Dict[type, int] = {kind: 1 for kind in ENTITY_KINDS}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_all(self, kind: Type[T], where: Optional[Callable[[T], bool]] = None) -> List[T]:
        rows = list(self._table(kind).values())
        if where is None:
            return rows
        return [row for row in rows if where(row)]

    def find_one(self, kind: Type[T], where: Callable[[T], bool]) -> Optional[T]:
        for row in self._table(kind).values():
            if where(row):
                return row
        return None

    def get(self, kind: Type[T], entity_id: int) -> Optional[T]:
        return self._table(kind).get(entity_id)

    def arguments_of(self, server: Server) -> List[ServerArgument]:
        stored = self.get(Server, server.id) if server.id is not None else None
        return list((stored or server).arguments)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def save(self, entity: T) -> T:
        kind = type(entity)
        table = self._table(kind)
        self._check_unique(entity)
        if entity.id is None:
            entity.id = self._next_id[kind]
            self._next_id[kind] += 1
        elif entity.id >= self._next_id[kind]:
            self._next_id[kind] = entity.id + 1
        table[entity.id] = entity
        self._flush()
        return entity

    def remove(self, entity: Any) -> None:
        kind = type(entity)
        table = self._table(kind)
        if entity.id is None or entity.id not in table:
            raise PersistenceError(f"{kind.__name__} {entity.id} is not stored")

        if kind is Server:
            sources = self._tables[Source]
            for source_id in [sid for sid, s in sources.items() if s.server.id == entity.id]:
                del sources[source_id]
        elif kind is SourceType:
            for source in self._tables[Source].values():
                if source.source_type is not None and source.source_type.id == entity.id:
                    source.source_type = None
            for comp in self._tables[Compatibility].values():
                comp.source_types = [st for st in comp.source_types if st.id != entity.id]
        elif kind is CardType:
            comps = self._tables[Compatibility]
            for comp_id in [cid for cid, c in comps.items() if c.card_type.id == entity.id]:
                del comps[comp_id]

        del table[entity.id]
        self._flush()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _table(self, kind: type) -> Dict[int, Any]:
        try:
            return self._tables[kind]
        except KeyError:
            raise PersistenceError(f"Unsupported entity kind {kind.__name__}") from None

    def _conflict(self, kind: type, entity: Any, same: Callable[[Any], bool]) -> Any:
        for row in self._tables[kind].values():
            if row.id != entity.id and same(row):
                return row
        return None

    def _check_unique(self, entity: Any) -> None:
        if isinstance(entity, Server):
            if self._conflict(Server, entity, lambda s: s.url == entity.url):
                raise PersistenceError(f"Server with url '{entity.url}' already exists")
        elif isinstance(entity, (SourceType, CardType)):
            if self._conflict(type(entity), entity, lambda t: t.name == entity.name):
                raise PersistenceError(
                    f"{type(entity).__name__} '{entity.name}' already exists"
                )
        elif isinstance(entity, Compatibility):
            if entity.card_type.id is None:
                raise PersistenceError(
                    f"Card type '{entity.card_type.name}' must be saved first"
                )
            if self._conflict(Compatibility, entity, lambda c: c.card_type.id == entity.card_type.id):
                raise PersistenceError(
                    f"Compatibility for card type '{entity.card_type.name}' already exists"
                )
        elif isinstance(entity, Source):
            if entity.server.id is None:
                raise PersistenceError(f"Server of source '{entity.name}' must be saved first")
            if self._conflict(Source, entity, lambda s: s.key == entity.key):
                raise PersistenceError(
                    f"Source '{entity.address}' already exists on server {entity.server.id}"
                )

    def _flush(self) -> None:
        """Hook for persistent subclasses."""


class JsonStore(Store):
    """Store persisted to a human-readable JSON file after every mutation."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = Path(path)
        self._loading = False
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _flush(self) -> None:
        if self._loading:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(_serialize(self), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as exc:
            raise PersistenceError(f"Could not write store {self._path}: {exc}") from exc
        logger.debug("Store saved to %s", self._path)

    def _load(self) -> None:
        if not self._path.exists():
            logger.info("No store file at %s, starting fresh", self._path)
            return

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            self._loading = True
            _deserialize(self, raw)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError, PersistenceError) as exc:
            logger.warning("Corrupt store file %s: %s, starting fresh", self._path, exc)
            Store.__init__(self)
        finally:
            self._loading = False


def _serialize(store: Store) -> Dict[str, Any]:
    return {
        "servers": [
            {
                "id": s.id,
                "name": s.name,
                "url": s.url,
                "type": s.type,
                "is_reachable": s.is_reachable,
                "disabled": s.disabled,
                "arguments": [{"key": a.key, "value": a.value} for a in s.arguments],
            }
            for s in store.find_all(Server)
        ],
        "source_types": [{"id": t.id, "name": t.name} for t in store.find_all(SourceType)],
        "card_types": [
            {"id": t.id, "name": t.name, "can_be_aggregated": t.can_be_aggregated}
            for t in store.find_all(CardType)
        ],
        "compatibilities": [
            {
                "id": c.id,
                "card_type": c.card_type.id,
                "source_types": [st.id for st in c.source_types],
            }
            for c in store.find_all(Compatibility)
        ],
        "sources": [
            {
                "id": s.id,
                "name": s.name,
                "address": s.address,
                "is_reachable": s.is_reachable,
                "server": s.server.id,
                "source_type": s.source_type.id if s.source_type else None,
            }
            for s in store.find_all(Source)
        ],
    }


def _deserialize(store: Store, raw: Dict[str, Any]) -> None:
    servers: Dict[int, Server] = {}
    for item in raw.get("servers", []):
        server = Server(
            id=item["id"],
            name=item["name"],
            url=item["url"],
            type=item["type"],
            is_reachable=item.get("is_reachable", True),
            disabled=item.get("disabled", False),
            arguments=[ServerArgument(key=a["key"], value=a["value"]) for a in item.get("arguments", [])],
        )
        servers[server.id] = store.save(server)

    source_types: Dict[int, SourceType] = {}
    for item in raw.get("source_types", []):
        st = store.save(SourceType(id=item["id"], name=item["name"]))
        source_types[st.id] = st

    card_types: Dict[int, CardType] = {}
    for item in raw.get("card_types", []):
        ct = store.save(
            CardType(id=item["id"], name=item["name"], can_be_aggregated=item.get("can_be_aggregated", False))
        )
        card_types[ct.id] = ct

    for item in raw.get("compatibilities", []):
        store.save(
            Compatibility(
                id=item["id"],
                card_type=card_types[item["card_type"]],
                source_types=[source_types[sid] for sid in item.get("source_types", [])],
            )
        )

    for item in raw.get("sources", []):
        type_id = item.get("source_type")
        store.save(
            Source(
                id=item["id"],
                name=item["name"],
                address=item["address"],
                is_reachable=item.get("is_reachable", True),
                server=servers[item["server"]],
                source_type=source_types.get(type_id) if type_id is not None else None,
            )
        )
