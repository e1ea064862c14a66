"""Adapter for Jenkins servers, read through the JSON remote access API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

from ci_board.adapters import CardSourceMap, CardSupport
from ci_board.cards import (
    IFRAME,
    LINE_GRAPH,
    MATRIX,
    SINGLE_VALUE,
    IFrame,
    LineGraph,
    Matrix,
    MatrixCell,
    MatrixResult,
    MultiChoice,
    Options,
    SingleValue,
    TimeSpan,
)
from ci_board.errors import AdapterError
from ci_board.http import ServerClient
from ci_board.models import Server, ServerArgument, Source, SourceType

logger = logging.getLogger(__name__)

JOB = "jenkins"
MATRIX_JOB = "jenkins-matrix"

MATRIX_PROJECT_CLASS = "hudson.matrix.MatrixProject"
FOLDER_CLASS_SUFFIX = ".Folder"

# Jenkins build results that do not share a name with MatrixResult
_RESULTS = {
    "UNSTABLE": MatrixResult.WARNING,
    "NOT_BUILT": MatrixResult.NOTRUN,
    "ABORTED": MatrixResult.NOTRUN,
}


class JenkinsParser:
    """Lists the jobs of a Jenkins server and reports on their builds."""

    name = "jenkins"
    supported_servers = ["jenkins"]
    supported_sources = [JOB, MATRIX_JOB]
    supported_cards = [
        CardSupport(LINE_GRAPH, aggregated=True),
        CardSupport(IFRAME),
        CardSupport(MATRIX),
        CardSupport(SINGLE_VALUE, aggregated=True),
    ]
    card_source_map = [
        CardSourceMap(LINE_GRAPH, [JOB, MATRIX_JOB]),
        CardSourceMap(IFRAME, [JOB, MATRIX_JOB]),
        CardSourceMap(SINGLE_VALUE, [JOB, MATRIX_JOB]),
        CardSourceMap(MATRIX, [MATRIX_JOB]),
    ]

    def __init__(self, history: int = 20, rate_limit_ms: int = 0) -> None:
        self._history = history
        self._rate_limit_ms = rate_limit_ms

    def _client(self, server: Server, arguments: Sequence[ServerArgument]) -> ServerClient:
        return ServerClient.for_server(server, arguments, rate_limit_ms=self._rate_limit_ms)

    async def list_sources(
        self, server: Server, arguments: Sequence[ServerArgument]
    ) -> List[Source]:
        async with self._client(server, arguments) as client:
            data = await client.get_json("api/json", params={"tree": "jobs[name,url,_class]"})

        sources: List[Source] = []
        for job in data.get("jobs", []):
            job_class = job.get("_class", "")
            if job_class.endswith(FOLDER_CLASS_SUFFIX):
                continue
            kind = MATRIX_JOB if job_class == MATRIX_PROJECT_CLASS else JOB
            sources.append(
                Source(
                    name=job["name"],
                    address=job["url"],
                    server=server,
                    source_type=SourceType(name=kind),
                )
            )
        logger.info("Jenkins %s: found %d jobs", server.name, len(sources))
        return sources

    async def fetch_card(self, card_kind: str, source: Source) -> Any:
        if card_kind == IFRAME:
            return IFrame(url=source.address)
        if card_kind not in (LINE_GRAPH, SINGLE_VALUE, MATRIX):
            raise AdapterError(f"Card type '{card_kind}' is not served by {self.name}")

        async with self._client(source.server, source.server.arguments) as client:
            if card_kind == LINE_GRAPH:
                return await self._build_durations(client, source)
            if card_kind == SINGLE_VALUE:
                return await self._last_result(client, source)
            return await self._configuration_matrix(client, source)

    async def fetch_options(self, source: Source) -> Options:
        return Options(
            timespans=[
                TimeSpan("period", "Period", "Only builds started within this period", max_unit="d")
            ],
            multichoices=[
                MultiChoice(
                    "results",
                    "Results",
                    f"Build results of {source.name} to include",
                    ["SUCCESS", "UNSTABLE", "FAILURE", "ABORTED"],
                )
            ],
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _job_json(self, client: ServerClient, source: Source, tree: str) -> Dict[str, Any]:
        return await client.get_json(f"{source.address.rstrip('/')}/api/json", params={"tree": tree})

    async def _build_durations(self, client: ServerClient, source: Source) -> LineGraph:
        data = await self._job_json(
            client, source, f"builds[number,duration]{{0,{self._history}}}"
        )
        # Jenkins lists newest first
        builds = list(reversed(data.get("builds", [])))
        return LineGraph(
            labels=[f"#{b['number']}" for b in builds],
            data=[round(b.get("duration", 0) / 1000.0, 1) for b in builds],
        )

    async def _last_result(self, client: ServerClient, source: Source) -> SingleValue:
        data = await self._job_json(client, source, "lastBuild[number,result]")
        last = data.get("lastBuild")
        if last is None:
            return SingleValue(name=source.name, value=None)
        return SingleValue(name=source.name, value=_result(last).value)

    async def _configuration_matrix(self, client: ServerClient, source: Source) -> Matrix:
        data = await self._job_json(
            client, source, "activeConfigurations[name,lastBuild[result,url]]"
        )
        matrix = Matrix()
        for config in data.get("activeConfigurations", []):
            column, row = _split_axes(config["name"])
            if column not in matrix.columns:
                matrix.columns.append(column)
            if row not in matrix.rows:
                matrix.rows.append(row)
            last = config.get("lastBuild")
            if last is None:
                cell = MatrixCell(result=MatrixResult.NOTRUN)
            else:
                cell = MatrixCell(result=_result(last), url=last.get("url"))
            matrix.values.setdefault(column, {})[row] = cell
        return matrix


def _result(build: Dict[str, Any]) -> MatrixResult:
    result = build.get("result")
    if result is None:
        # no result yet means the build is still going
        return MatrixResult.RUNNING
    return _RESULTS.get(result) or MatrixResult.coerce(result)


def _split_axes(name: str) -> Tuple[str, str]:
    """Split a configuration name into its first axis and the remaining ones."""
    column, _, row = name.partition(",")
    return column, row or "default"
