"""CI board: aggregates CI/build server data into dashboard cards.

Adapters implement :class:`ci_board.adapters.ParserAdapter`.  Adapters that
talk to HTTP/JSON servers can build a :class:`ci_board.http.ServerClient`
with ``ServerClient.for_server(server, arguments)``.
"""

__version__ = "0.1.0"
