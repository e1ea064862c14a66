"""Administrative operations on servers and manually registered sources."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import httpx

from ci_board.errors import NotFoundError, PersistenceError
from ci_board.models import Compatibility, Server, ServerArgument, Source, SourceType
from ci_board.store import Store

logger = logging.getLogger(__name__)

ArgumentsInput = Union[Mapping[str, str], Iterable[Tuple[str, str]], Iterable[ServerArgument]]


def normalize_url(raw: str) -> str:
    """Return scheme://host[:port]/path of an absolute http(s) URL."""
    try:
        url = httpx.URL(str(raw).strip())
    except (httpx.InvalidURL, TypeError) as exc:
        raise ValueError(f"Invalid server url '{raw}': {exc}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ValueError(f"Server url '{raw}' must be an absolute http(s) URL")
    netloc = url.host if url.port is None else f"{url.host}:{url.port}"
    return f"{url.scheme}://{netloc}{url.path}"


def _required(value: Optional[str], what: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{what} cannot be empty!")
    return cleaned


def _build_arguments(arguments: ArgumentsInput) -> List[ServerArgument]:
    if isinstance(arguments, Mapping):
        return [ServerArgument(key=str(k), value=str(v)) for k, v in arguments.items()]
    result: List[ServerArgument] = []
    for item in arguments:
        if isinstance(item, ServerArgument):
            result.append(ServerArgument(key=item.key, value=item.value))
        else:
            key, value = item
            result.append(ServerArgument(key=str(key), value=str(value)))
    return result


def _get_server(store: Store, server_id: int) -> Server:
    server = store.get(Server, server_id)
    if server is None:
        raise NotFoundError(f"Server with the ID {server_id} does not exist!")
    return server


def create_server(
    store: Store,
    name: str,
    url: str,
    kind: str,
    disabled: bool = False,
    arguments: Optional[ArgumentsInput] = None,
) -> Server:
    """Validate and save a new server; it starts as unreachable."""
    server = Server(
        name=_required(name, "Server name"),
        url=normalize_url(url),
        type=_required(kind, "Server type"),
        disabled=bool(disabled),
        is_reachable=False,
        arguments=_build_arguments(arguments) if arguments else [],
    )
    store.save(server)
    logger.info("Created server %s (%s, %s)", server.name, server.type, server.url)
    return server


def update_server(
    store: Store,
    server_id: int,
    name: str,
    url: str,
    kind: str,
    disabled: bool = False,
    arguments: Optional[ArgumentsInput] = None,
) -> Server:
    """Apply new values to a server; given arguments replace the old ones."""
    server = _get_server(store, server_id)
    name = _required(name, "Server name")
    kind = _required(kind, "Server type")
    url = normalize_url(url)
    if store.find_one(Server, lambda s: s.url == url and s.id != server.id):
        raise PersistenceError(f"Server with url '{url}' already exists")

    server.name, server.url, server.type = name, url, kind
    server.disabled = bool(disabled)
    if arguments is not None:
        server.arguments = _build_arguments(arguments)
    store.save(server)
    logger.info("Updated server %s", server.id)
    return server


def delete_server(store: Store, server_id: int) -> None:
    """Remove a server together with its arguments and sources."""
    server = _get_server(store, server_id)
    store.remove(server)
    logger.info("Removed server %s (%s)", server_id, server.name)


def register_source(
    store: Store,
    server_id: int,
    name: str,
    address: str,
    source_kind: str,
) -> Source:
    """Manually register a source on a server."""
    server = _get_server(store, server_id)
    source_type = store.find_one(SourceType, lambda t: t.name == source_kind)
    if source_type is None:
        raise NotFoundError(f"Source type '{source_kind}' does not exist!")
    source = Source(
        name=_required(name, "Source name"),
        address=_required(address, "Source address"),
        server=server,
        source_type=source_type,
    )
    store.save(source)
    logger.info("Registered source %s on %s", source.address, server.name)
    return source


def get_source(store: Store, source_id: int) -> Source:
    source = store.get(Source, source_id)
    if source is None:
        raise NotFoundError(f"Source with the ID {source_id} does not exist!")
    return source


def delete_source(store: Store, source_id: int) -> None:
    store.remove(get_source(store, source_id))
    logger.info("Removed source %s", source_id)


def overview(store: Store) -> Dict[str, List[Any]]:
    """Servers, sources and compatibilities as the transport layer lists them."""
    return {
        "servers": store.find_all(Server),
        "sources": store.find_all(Source),
        "compatibilities": store.find_all(Compatibility),
    }
