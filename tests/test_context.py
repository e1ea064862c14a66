"""Tests for building the application context from configuration."""

from ci_board.config import AdapterConfig, AppConfig, ServerSeed, StoreConfig
from ci_board.context import build_context
from ci_board.models import CardType, Compatibility, Server, Source
from ci_board.store import JsonStore, Store

from conftest import FakeJenkinsParser


def _config(**kwargs):
    return AppConfig(
        adapters=[AdapterConfig(name="fake", class_path="conftest.FakeJenkinsParser")],
        servers=[ServerSeed(name="Main", url="https://jenkins.test", type="jenkins", arguments={"token": "t"})],
        **kwargs,
    )


def test_build_context_in_memory():
    ctx = build_context(_config())
    assert type(ctx.store) is Store
    assert len(ctx.registry) == 1
    assert ctx.index.can_serve("jenkins-matrix", "Matrix")
    assert len(ctx.store.find_all(Compatibility)) == 4
    server = ctx.store.find_all(Server)[0]
    assert server.url == "https://jenkins.test/"
    assert server.argument("token") == "t"


def test_explicit_adapters_come_first():
    explicit = FakeJenkinsParser()
    ctx = build_context(_config(), adapters=[explicit])
    assert ctx.registry.all_adapters()[0] is explicit
    assert len(ctx.registry) == 2


def test_disabled_and_broken_adapters_are_skipped():
    config = AppConfig(
        adapters=[
            AdapterConfig(name="fake", class_path="conftest.FakeJenkinsParser", enabled=False),
            AdapterConfig(name="broken", class_path="no_such_module_xyz.Parser"),
        ]
    )
    ctx = build_context(config)
    assert len(ctx.registry) == 0
    # default card types are still seeded
    assert len(ctx.store.find_all(CardType)) == 4


async def test_context_end_to_end(tmp_path):
    path = tmp_path / "board.json"
    ctx = build_context(_config(store=StoreConfig(path=str(path))))
    assert isinstance(ctx.store, JsonStore)
    report = await ctx.service.refresh_sources()
    assert len(report.created) == 3

    # second start: seeds and compatibility are not duplicated
    ctx2 = build_context(_config(store=StoreConfig(path=str(path))))
    assert len(ctx2.store.find_all(Server)) == 1
    assert len(ctx2.store.find_all(Source)) == 3
    assert len(ctx2.store.find_all(Compatibility)) == 4

    matrix = ctx2.store.find_one(Source, lambda s: s.address == "https://jenkins.test/matrix/")
    data = await ctx2.service.get_source_data([matrix], "Line Graph")
    assert data[0].labels == ["foo", "bar", "boo", "far"]
