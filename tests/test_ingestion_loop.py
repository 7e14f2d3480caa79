import httpx
import pytest
from sqlalchemy import func, select

from dubstats.db.schema import package
from dubstats.errors import TransportError
from dubstats.services.dispatcher import CommandDispatcher
from dubstats.services.handlers import build_handlers
from dubstats.services.ingestion_loop import IngestionLoop
from dubstats.services.queue import CommandQueue
from dubstats.services.registry_client import RegistryClient

from conftest import FakeSQS, read_fixture, sqs_message


def _package_count(engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(package)).scalar()


def _loop(sqs, writer, listing_handler):
    client = RegistryClient("https://registry.test", transport=httpx.MockTransport(listing_handler))
    queue = CommandQueue(sqs, "https://sqs.test/q")
    dispatcher = CommandDispatcher(queue, build_handlers(client, writer))
    return IngestionLoop(queue, dispatcher)


def _listing_ok(request):
    return httpx.Response(200, text=read_fixture("dub_listing_sample.html"))


def test_batch_with_bad_messages_keeps_processing(engine, writer):
    sqs = FakeSQS([[
        sqs_message("bad", "{not json"),
        sqs_message("unknown", '{"command": "unknown_thing"}'),
        sqs_message("good", '{"command": "update_package_list"}'),
    ]])
    loop = _loop(sqs, writer, _listing_ok)

    dispatched = loop.run(max_polls=1)

    assert dispatched == 3
    assert sqs.deleted == ["rh-good"]
    assert _package_count(engine) == 3


def test_empty_batches_poll_again(engine, writer):
    sqs = FakeSQS([[], [], [sqs_message("m1", '{"command": "update_package_list"}')]])
    loop = _loop(sqs, writer, _listing_ok)

    assert loop.run(max_polls=3) == 1
    assert len(sqs.receive_calls) == 3
    assert sqs.deleted == ["rh-m1"]


def test_upstream_transport_failure_leaves_message_and_continues(engine, writer):
    def unreachable(request):
        raise httpx.ConnectError("unreachable", request=request)

    sqs = FakeSQS([
        [sqs_message("m1", '{"command": "update_package_list"}')],
        [sqs_message("m2", '{"command": "update_package_list"}')],
    ])
    loop = _loop(sqs, writer, unreachable)

    assert loop.run(max_polls=2) == 2
    assert sqs.deleted == []
    assert _package_count(engine) == 0


def test_receive_failure_is_fatal(engine, writer):
    sqs = FakeSQS([[sqs_message("m1", '{"command": "update_package_list"}')]])
    sqs.fail_receive_after = 1
    loop = _loop(sqs, writer, _listing_ok)

    with pytest.raises(TransportError):
        loop.run()
    # the batch received before the failure was fully handled
    assert sqs.deleted == ["rh-m1"]
