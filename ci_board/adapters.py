"""Adapter ("parser") protocol, capability records and the parser registry."""

from __future__ import annotations

import importlib
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple, Type, runtime_checkable

from ci_board.cards import Options
from ci_board.errors import RegistrationError
from ci_board.models import Server, ServerArgument, Source
from ci_board.parsers import BUILTIN_PARSERS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardSupport:
    """A card kind an adapter can produce."""

    name: str
    aggregated: bool = False


@dataclass(frozen=True)
class CardSourceMap:
    """Source kinds an adapter can turn into one card kind."""

    card_kind: str
    source_kinds: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # accept lists from adapter authors, keep the record hashable
        object.__setattr__(self, "source_kinds", tuple(self.source_kinds))


@runtime_checkable
class ParserAdapter(Protocol):
    """Protocol that all CI server adapters must satisfy.

    Each adapter knows how to talk to one kind of external server,
    enumerate the sources it hosts and turn a source into card payloads.
    The capability lists are static declarations used for matching.
    """

    supported_servers: List[str]
    supported_sources: List[str]
    supported_cards: List[CardSupport]
    card_source_map: List[CardSourceMap]

    async def list_sources(
        self, server: Server, arguments: Sequence[ServerArgument]
    ) -> List[Source]:
        """Return every source available on *server*."""
        ...

    async def fetch_card(self, card_kind: str, source: Source) -> Any:
        """Return the payload for *card_kind* built from *source*."""
        ...

    async def fetch_options(self, source: Source) -> Options:
        """Return the configuration options available for *source*."""
        ...


_REQUIRED_METHODS = ("list_sources", "fetch_card", "fetch_options")
_REQUIRED_LISTS = ("supported_servers", "supported_sources", "supported_cards")


def adapter_name(adapter: Any) -> str:
    """Human-readable adapter name for log lines."""
    name = getattr(adapter, "name", None)
    if isinstance(name, str) and name:
        return name
    return type(adapter).__name__


def check_adapter(candidate: Any) -> None:
    """Raise RegistrationError unless *candidate* has the adapter shape."""
    if candidate is None:
        raise RegistrationError(candidate, "candidate is None")
    for method in _REQUIRED_METHODS:
        if not callable(getattr(candidate, method, None)):
            raise RegistrationError(candidate, f"missing method '{method}'")
    for attr in _REQUIRED_LISTS:
        value = getattr(candidate, attr, None)
        if value is None:
            raise RegistrationError(candidate, f"missing capability list '{attr}'")
        if not isinstance(value, (list, tuple)):
            raise RegistrationError(
                candidate, f"'{attr}' must be a list, got {type(value).__name__}"
            )
    for card in candidate.supported_cards:
        if not isinstance(card, CardSupport):
            raise RegistrationError(
                candidate, f"supported_cards entry {card!r} is not a CardSupport"
            )
    mapping = getattr(candidate, "card_source_map", None)
    if mapping is not None and not isinstance(mapping, (list, tuple)):
        raise RegistrationError(
            candidate, f"'card_source_map' must be a list, got {type(mapping).__name__}"
        )
    for entry in mapping or ():
        if not isinstance(entry, CardSourceMap):
            raise RegistrationError(
                candidate, f"card_source_map entry {entry!r} is not a CardSourceMap"
            )


def card_source_map(adapter: Any) -> Sequence[CardSourceMap]:
    return getattr(adapter, "card_source_map", None) or ()


class ParserRegistry:
    """Ordered set of admitted adapters.

    Every lookup returns the first match in registration order.
    """

    def __init__(self, candidates: Iterable[Any] = ()) -> None:
        self._adapters: List[ParserAdapter] = []
        self.register_all(candidates)

    def __len__(self) -> int:
        return len(self._adapters)

    def __iter__(self):
        return iter(self._adapters)

    def register(self, candidate: Any) -> bool:
        """Admit *candidate* if it has the adapter shape.

        Classes are instantiated without arguments first.  Rejections are
        logged and reported by returning False, never raised.
        """
        try:
            adapter = candidate() if inspect.isclass(candidate) else candidate
            check_adapter(adapter)
        except RegistrationError as exc:
            logger.error("Found an incompatible parser: %s", exc)
            return False
        except Exception as exc:
            logger.error(
                "Found an incompatible parser: %s",
                RegistrationError(candidate, f"could not be instantiated: {exc}"),
            )
            return False

        logger.info(
            "Registered parser %s (servers=%s, sources=%s)",
            adapter_name(adapter),
            list(adapter.supported_servers),
            list(adapter.supported_sources),
        )
        self._adapters.append(adapter)
        return True

    def register_all(self, candidates: Iterable[Any]) -> int:
        """Register each candidate; return how many were admitted."""
        return sum(1 for c in candidates if self.register(c))

    def all_adapters(self) -> List[ParserAdapter]:
        return list(self._adapters)

    def copy(self) -> "ParserRegistry":
        """Independent registry with the same admitted adapters."""
        clone = ParserRegistry()
        clone._adapters = list(self._adapters)
        return clone

    def by_server_kind(self, kind: str) -> Optional[ParserAdapter]:
        for adapter in self._adapters:
            if kind in adapter.supported_servers:
                return adapter
        return None

    def by_source_kind(self, kind: str) -> Optional[ParserAdapter]:
        for adapter in self._adapters:
            if kind in adapter.supported_sources:
                return adapter
        return None

    def by_source_and_card(self, source_kind: str, card_kind: str) -> Optional[ParserAdapter]:
        for adapter in self._adapters:
            for entry in card_source_map(adapter):
                if entry.card_kind == card_kind and source_kind in entry.source_kinds:
                    return adapter
        return None


def get_adapter_class(qualified: str) -> Type[Any]:
    """Import and return the adapter class at a dotted path.

    Names of bundled parsers (see ``ci_board.parsers``) are accepted too.
    """
    qualified = BUILTIN_PARSERS.get(qualified, qualified)
    if "." not in qualified:
        raise ValueError(f"Adapter path '{qualified}' must be 'module.ClassName'")
    module_path, class_name = qualified.rsplit(".", 1)
    module = importlib.import_module(module_path)
    try:
        return getattr(module, class_name)
    except AttributeError:
        raise ValueError(f"Module '{module_path}' has no adapter '{class_name}'") from None


def load_adapters(registry: ParserRegistry, qualified_names: Iterable[str]) -> int:
    """Import adapters by dotted path and register them in order.

    Import failures are logged and skipped like any other rejection.
    """
    admitted = 0
    for qualified in qualified_names:
        try:
            cls = get_adapter_class(qualified)
        except (ImportError, ValueError) as exc:
            logger.error(
                "Failed to load parser: %s", RegistrationError(qualified, str(exc))
            )
            continue
        if registry.register(cls):
            admitted += 1
    return admitted
