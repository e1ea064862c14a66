"""Exception taxonomy shared by the registry, store and aggregation service."""

from __future__ import annotations

from typing import Optional


class BoardError(Exception):
    """Base class for all ci-board errors."""


class RegistrationError(BoardError):
    """An adapter candidate failed the capability shape check."""

    def __init__(self, candidate: object, reason: str) -> None:
        self.candidate = candidate
        self.reason = reason
        super().__init__(f"Incompatible parser {candidate!r}: {reason}")


class UnresolvedAdapterError(BoardError):
    """No registered adapter can serve the requested kind(s)."""

    def __init__(
        self,
        message: str,
        *,
        server_kind: Optional[str] = None,
        source_kind: Optional[str] = None,
        card_kind: Optional[str] = None,
    ) -> None:
        self.server_kind = server_kind
        self.source_kind = source_kind
        self.card_kind = card_kind
        super().__init__(message)


class AdapterError(BoardError):
    """An adapter failed while talking to its external system."""


class PersistenceError(BoardError):
    """The store refused or failed a read/write."""


class NotFoundError(BoardError, LookupError):
    """A record addressed by id does not exist."""
