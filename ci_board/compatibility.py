"""Card-kind / source-kind compatibility derived from registered adapters."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List, Set, Tuple

from ci_board.adapters import ParserAdapter, card_source_map
from ci_board.cards import DEFAULT_CARD_TYPES
from ci_board.models import CardType, Compatibility, SourceType
from ci_board.store import Store

logger = logging.getLogger(__name__)


class CompatibilityIndex:
    """Bipartite mapping card kind -> source kinds, plus its inverse."""

    def __init__(self, adapters: Iterable[ParserAdapter] = ()) -> None:
        self._by_card: Dict[str, Set[str]] = {}
        self._by_source: Dict[str, Set[str]] = {}
        self._aggregated: Dict[str, bool] = {}
        self._source_kinds: List[str] = []
        self._adapters: List[ParserAdapter] = []
        for adapter in adapters:
            self.add(adapter)

    def add(self, adapter: ParserAdapter) -> None:
        """Fold one adapter's declarations into the index."""
        self._adapters.append(adapter)
        for card in adapter.supported_cards:
            self._aggregated.setdefault(card.name, card.aggregated)
        for kind in adapter.supported_sources:
            self._note_source_kind(kind)
        for entry in card_source_map(adapter):
            self._aggregated.setdefault(entry.card_kind, False)
            for kind in entry.source_kinds:
                self._note_source_kind(kind)
                self._by_card.setdefault(entry.card_kind, set()).add(kind)
                self._by_source.setdefault(kind, set()).add(entry.card_kind)

    def _note_source_kind(self, kind: str) -> None:
        if kind not in self._source_kinds:
            self._source_kinds.append(kind)

    def can_serve(self, source_kind: str, card_kind: str) -> bool:
        return source_kind in self._by_card.get(card_kind, ())

    def sources_for(self, card_kind: str) -> FrozenSet[str]:
        return frozenset(self._by_card.get(card_kind, ()))

    def cards_for(self, source_kind: str) -> FrozenSet[str]:
        return frozenset(self._by_source.get(source_kind, ()))

    @property
    def card_kinds(self) -> Dict[str, bool]:
        """Declared card kinds mapped to their aggregatable flag."""
        return dict(self._aggregated)

    @property
    def source_kinds(self) -> List[str]:
        return list(self._source_kinds)

    def pairs(self) -> List[Tuple[str, List[str]]]:
        return [(card, sorted(kinds)) for card, kinds in self._by_card.items()]

    def sync(self, store: Store) -> None:
        """Upsert card types, source types and compatibility records.

        Only ever adds: existing records and relationships are kept, missing
        ones are created, and source types are de-duplicated per card type.
        """
        for name, aggregated in DEFAULT_CARD_TYPES:
            _ensure_card_type(store, name, aggregated)

        for adapter in self._adapters:
            for card in adapter.supported_cards:
                _ensure_card_type(store, card.name, card.aggregated)
            for kind in adapter.supported_sources:
                _ensure_source_type(store, kind)

            for entry in card_source_map(adapter):
                card_type = _ensure_card_type(store, entry.card_kind, False)
                comp = store.find_one(Compatibility, lambda c: c.card_type.id == card_type.id)
                if comp is None:
                    comp = Compatibility(card_type=card_type)

                known = {st.id for st in comp.source_types}
                added = 0
                for kind in entry.source_kinds:
                    source_type = _ensure_source_type(store, kind)
                    if source_type.id not in known:
                        comp.source_types.append(source_type)
                        known.add(source_type.id)
                        added += 1

                if comp.id is None or added:
                    store.save(comp)
                    logger.debug(
                        "Compatibility %s -> %s", card_type.name, comp.source_type_names
                    )

        logger.info(
            "Compatibility synced: %d card types, %d source types",
            len(store.find_all(CardType)),
            len(store.find_all(SourceType)),
        )


def _ensure_card_type(store: Store, name: str, aggregated: bool) -> CardType:
    existing = store.find_one(CardType, lambda t: t.name == name)
    if existing is not None:
        return existing
    logger.debug("Creating card type %s", name)
    return store.save(CardType(name=name, can_be_aggregated=aggregated))


def _ensure_source_type(store: Store, name: str) -> SourceType:
    existing = store.find_one(SourceType, lambda t: t.name == name)
    if existing is not None:
        return existing
    logger.debug("Creating source type %s", name)
    return store.save(SourceType(name=name))
