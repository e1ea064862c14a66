"""Tests for the compatibility index and its persisted upsert."""

from ci_board.adapters import CardSourceMap, CardSupport, ParserRegistry
from ci_board.compatibility import CompatibilityIndex
from ci_board.models import CardType, Compatibility, SourceType

from conftest import FakeJenkinsParser


class ExtraParser:
    supported_servers = ["gitlab"]
    supported_sources = ["gitlab-pipeline"]
    supported_cards = [CardSupport("Heatmap", aggregated=True), CardSupport("Line Graph", aggregated=False)]
    card_source_map = [
        CardSourceMap("Line Graph", ["gitlab-pipeline", "jenkins-matrix"]),
        CardSourceMap("Heatmap", ["gitlab-pipeline"]),
    ]

    async def list_sources(self, server, arguments):
        return []

    async def fetch_card(self, card_kind, source):
        return None

    async def fetch_options(self, source):
        return None


def _compat(store, card_name):
    return store.find_one(Compatibility, lambda c: c.card_type.name == card_name)


def test_index_queries():
    index = CompatibilityIndex([FakeJenkinsParser()])
    assert index.can_serve("jenkins-matrix", "Line Graph")
    assert not index.can_serve("jenkins", "Matrix")
    assert not index.can_serve("unknown-kind", "Line Graph")
    assert index.sources_for("Matrix") == {"jenkins-matrix", "jenkins-makefile"}
    assert index.cards_for("jenkins-makefile") == {"Line Graph", "Iframe", "Matrix", "Single Value"}
    assert index.sources_for("Heatmap") == frozenset()


def test_index_unions_parsers():
    index = CompatibilityIndex(ParserRegistry([FakeJenkinsParser(), ExtraParser()]))
    assert index.sources_for("Line Graph") == {
        "jenkins",
        "jenkins-matrix",
        "jenkins-makefile",
        "gitlab-pipeline",
    }
    # first declaration of a card kind fixes its aggregated flag
    assert index.card_kinds["Line Graph"] is True
    assert index.card_kinds["Heatmap"] is True
    assert index.source_kinds == ["jenkins", "jenkins-makefile", "jenkins-matrix", "gitlab-pipeline"]


def test_sync_seeds_default_card_types(store):
    CompatibilityIndex().sync(store)
    names = {t.name: t.can_be_aggregated for t in store.find_all(CardType)}
    assert names == {"Line Graph": True, "Matrix": False, "Iframe": False, "Single Value": True}
    assert store.find_all(Compatibility) == []


def test_sync_creates_records(store):
    CompatibilityIndex([FakeJenkinsParser()]).sync(store)
    assert {t.name for t in store.find_all(SourceType)} == {"jenkins", "jenkins-makefile", "jenkins-matrix"}
    assert sorted(_compat(store, "Line Graph").source_type_names) == [
        "jenkins",
        "jenkins-makefile",
        "jenkins-matrix",
    ]
    assert _compat(store, "Single Value").source_type_names == ["jenkins-makefile"]
    assert len(store.find_all(Compatibility)) == 4


def test_sync_is_idempotent(store):
    index = CompatibilityIndex([FakeJenkinsParser()])
    index.sync(store)
    first = {c.card_type.name: list(c.source_type_names) for c in store.find_all(Compatibility)}
    type_count = len(store.find_all(SourceType))

    index.sync(store)
    second = {c.card_type.name: list(c.source_type_names) for c in store.find_all(Compatibility)}
    assert first == second
    assert len(store.find_all(SourceType)) == type_count
    assert len(store.find_all(CardType)) == 4


def test_sync_extends_without_removing(store):
    CompatibilityIndex([FakeJenkinsParser()]).sync(store)
    CompatibilityIndex([ExtraParser()]).sync(store)

    line = _compat(store, "Line Graph").source_type_names
    assert sorted(line) == ["gitlab-pipeline", "jenkins", "jenkins-makefile", "jenkins-matrix"]
    assert len(line) == len(set(line))
    assert _compat(store, "Matrix").source_type_names == ["jenkins-matrix", "jenkins-makefile"]
    heatmap = store.find_one(CardType, lambda t: t.name == "Heatmap")
    assert heatmap.can_be_aggregated is True
    # existing card types keep their stored flag
    assert store.find_one(CardType, lambda t: t.name == "Line Graph").can_be_aggregated is True


def test_sync_card_kind_only_in_map(store):
    parser = ExtraParser()
    parser.supported_cards = []
    parser.card_source_map = [CardSourceMap("Burndown", ["gitlab-pipeline"])]
    CompatibilityIndex([parser]).sync(store)
    burndown = store.find_one(CardType, lambda t: t.name == "Burndown")
    assert burndown is not None
    assert burndown.can_be_aggregated is False
    assert _compat(store, "Burndown").source_type_names == ["gitlab-pipeline"]
