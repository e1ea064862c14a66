"""Persisted entities: servers, their arguments, sources and type records.

Entities reference each other directly (a Source holds its Server and
SourceType objects); the store assigns ids on first save.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass
class ServerArgument:
    """Key/value pair used by adapters to access a server (tokens, sub-paths)."""

    key: str
    value: str


@dataclass
class Server:
    """A reachable external CI/build system."""

    name: str
    url: str  # unique across servers
    type: str  # matched against adapter supported_servers
    is_reachable: bool = True
    disabled: bool = False
    arguments: List[ServerArgument] = field(default_factory=list)
    id: Optional[int] = None

    def argument(self, key: str) -> Optional[str]:
        for arg in self.arguments:
            if arg.key == key:
                return arg.value
        return None


@dataclass
class SourceType:
    """Named category of data source, e.g. "jenkins-matrix"."""

    name: str
    id: Optional[int] = None


@dataclass
class CardType:
    """Named kind of card and whether it can aggregate several sources."""

    name: str
    can_be_aggregated: bool = False
    id: Optional[int] = None


@dataclass
class Compatibility:
    """The source types a card type may be rendered from."""

    card_type: CardType
    source_types: List[SourceType] = field(default_factory=list)
    id: Optional[int] = None

    @property
    def source_type_names(self) -> List[str]:
        return [st.name for st in self.source_types]


@dataclass
class Source:
    """One data-producing endpoint on a server (job, pipeline, build config)."""

    name: str
    address: str  # URL or identifier, unique within its server
    server: Server
    source_type: Optional[SourceType] = None
    is_reachable: bool = True
    id: Optional[int] = None

    @property
    def type_name(self) -> Optional[str]:
        return self.source_type.name if self.source_type else None

    @property
    def key(self) -> Tuple[str, Optional[int]]:
        """Identity used for deduplication: (address, owning server id)."""
        return (self.address, self.server.id)
