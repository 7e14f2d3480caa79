import pytest

from dubstats import context as context_module
from dubstats import main as main_module
from dubstats.config import Settings
from dubstats.context import WorkerContext
from dubstats.errors import TransportError
from dubstats.services.handlers import UPDATE_PACKAGE_LIST, UPDATE_PACKAGE_STATS

from conftest import FakeSQS, sqs_message


class FakeSession:
    def __init__(self, sqs):
        self.sqs = sqs

    def client(self, name):
        if name == "sqs":
            return self.sqs
        if name == "ssm":
            return _FakeSSM()
        raise AssertionError(f"unexpected client {name}")


class _FakeSSM:
    def get_parameter(self, Name, WithDecryption=False):
        return {"Parameter": {"Value": {"db_url": "db:5432", "db_lambda_user": "u", "db_lambda_pass": "p"}[Name]}}


@pytest.fixture
def built(monkeypatch, engine):
    for k in ("DB_HOST", "DB_USER", "DB_PASSWORD"):
        monkeypatch.delenv(k, raising=False)
    seen = {}

    def fake_engine(credentials, settings):
        seen["credentials"] = credentials
        return engine

    monkeypatch.setattr(context_module, "create_db_engine", fake_engine)
    sqs = FakeSQS([[sqs_message("m1", '{"command": "unknown_thing"}')]])
    settings = Settings(queue_url="https://sqs.test/q", max_messages=3, wait_time_seconds=1)
    ctx = WorkerContext.build(settings, session=FakeSession(sqs))
    yield ctx, sqs, seen
    ctx.registry.close()


def test_build_wires_credentials_queue_and_handlers(built):
    ctx, sqs, seen = built
    assert seen["credentials"].host == "db:5432"
    assert ctx.queue.queue_url == "https://sqs.test/q"
    assert ctx.queue.max_messages == 3
    assert set(ctx.dispatcher().handlers) == {UPDATE_PACKAGE_LIST, UPDATE_PACKAGE_STATS}


def test_context_loop_runs_one_poll(built):
    ctx, sqs, _ = built
    assert ctx.ingestion_loop().run(max_polls=1) == 1
    assert sqs.deleted == []
    assert sqs.receive_calls[0]["WaitTimeSeconds"] == 1


def test_build_requires_queue_url():
    with pytest.raises(RuntimeError):
        WorkerContext.build(Settings(), session=FakeSession(FakeSQS()))


def test_main_exit_codes(monkeypatch):
    monkeypatch.setattr(main_module, "configure_logging", lambda mode: None)
    monkeypatch.setenv("MODE", "staging")
    assert main_module.main(["run"]) == 2

    monkeypatch.setenv("MODE", "prod")

    def fatal(settings, max_polls=None):
        raise TransportError("queue gone")

    monkeypatch.setattr(main_module, "run_worker", fatal)
    assert main_module.main(["run", "--max-polls", "1"]) == 1

    monkeypatch.setattr(main_module, "run_worker", lambda settings, max_polls=None: 0)
    assert main_module.main([]) == 0
