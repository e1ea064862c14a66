"""Shared fixtures: an in-memory store and a fake Jenkins-like parser."""

from typing import List

import pytest

from ci_board.adapters import CardSourceMap, CardSupport, ParserRegistry
from ci_board.cards import MultiChoice, Options, SingleChoice, TimeSpan
from ci_board.compatibility import CompatibilityIndex
from ci_board.models import Server, Source, SourceType
from ci_board.service import SourceService
from ci_board.store import Store


class FakeJenkinsParser:
    """Serves three Jenkins source kinds; lists one duplicate source."""

    name = "fake-jenkins"
    supported_servers = ["jenkins"]
    supported_sources = ["jenkins", "jenkins-makefile", "jenkins-matrix"]
    supported_cards = [
        CardSupport("Line Graph", aggregated=True),
        CardSupport("Iframe"),
        CardSupport("Matrix"),
    ]
    card_source_map = [
        CardSourceMap("Line Graph", ["jenkins", "jenkins-matrix", "jenkins-makefile"]),
        CardSourceMap("Iframe", ["jenkins-makefile"]),
        CardSourceMap("Matrix", ["jenkins-matrix", "jenkins-makefile"]),
        CardSourceMap("Single Value", ["jenkins-makefile"]),
    ]

    def __init__(self) -> None:
        self.listed: List[Server] = []
        self.fetched: List[tuple] = []

    async def list_sources(self, server, arguments):
        self.listed.append(server)
        data = [
            ("Jenkins Makefile", "https://jenkins.test/makefile/", "jenkins-makefile"),
            ("Jenkins Matrix", "https://jenkins.test/matrix/", "jenkins-matrix"),
            ("Jenkins Makefile", "https://jenkins.test/makefile/", "jenkins-makefile"),
            ("Jenkins New", "https://jenkins.test/new/", "jenkins"),
        ]
        return [
            Source(name=name, address=address, server=server, source_type=SourceType(name=kind))
            for name, address, kind in data
        ]

    async def fetch_card(self, card_kind, source):
        self.fetched.append((card_kind, source.address))
        if card_kind == "Line Graph":
            return {"labels": ["foo", "bar", "boo", "far"], "data": [1, 2, 3, 4]}
        if card_kind == "Iframe":
            return {"url": "https://test.url/source/api.json"}
        if card_kind == "Matrix":
            return {
                "columns": ["foo", "bar"],
                "rows": ["boo", "far"],
                "values": {
                    "foo": {
                        "boo": {"result": "NOTBUILT"},
                        "far": {"result": "SUCCESS", "url": "https://test.url/0/success"},
                    },
                    "bar": {
                        "boo": {"result": "FAILURE", "url": "https://test.url/0/failure"},
                        "far": {"result": "LOADING"},
                    },
                },
            }
        if card_kind == "Single Value":
            return {"name": "SingleValue", "value": "SUCCESS"}
        raise ValueError(f"Unknown card type {card_kind}!")

    async def fetch_options(self, source):
        return Options(
            singles=[SingleChoice("singleValue", "Test List", f"Test List for {source.name}")],
            timespans=[TimeSpan("testSpan", "Test Span", f"Test Span for {source.name}", max_unit="d")],
            multichoices=[
                MultiChoice("testMulti", "Test Multichoice", f"Test Multichoice for {source.name}", ["boo", "far"])
            ],
        )


@pytest.fixture
def store():
    return Store()


@pytest.fixture
def parser():
    return FakeJenkinsParser()


@pytest.fixture
def registry(parser):
    return ParserRegistry([parser])


@pytest.fixture
def service(registry, store):
    CompatibilityIndex(registry).sync(store)
    return SourceService(registry, store)


@pytest.fixture
def jenkins(store):
    return store.save(Server(name="Jenkins", url="https://jenkins.test/", type="jenkins"))


@pytest.fixture
def make_source(store, jenkins):
    """Factory saving a source of a given kind on the jenkins server."""

    def _make(kind, address="https://jenkins.test/job/", name="Job", server=None):
        source_type = store.find_one(SourceType, lambda t: t.name == kind)
        if source_type is None:
            source_type = store.save(SourceType(name=kind))
        return store.save(
            Source(name=name, address=address, server=server or jenkins, source_type=source_type)
        )

    return _make
