from pathlib import Path
from typing import Dict, List

import pytest
from botocore.exceptions import ClientError
from sqlalchemy import create_engine

from dubstats.db.schema import create_schema
from dubstats.services.snapshot_writer import SnapshotWriter


FIXTURES = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def client_error(operation: str, code: str = "AWS.SimpleQueueService.NonExistentQueue") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, operation)


class FakeSQS:
    """Records SQS calls; serves pre-loaded receive batches, then empty ones."""

    def __init__(self, batches: List[List[Dict]] = None) -> None:
        self.batches = list(batches or [])
        self.receive_calls: List[Dict] = []
        self.deleted: List[str] = []
        self.sent: List[Dict] = []
        self.fail_receive_after = None
        self.fail_delete = False

    def receive_message(self, **kwargs):
        self.receive_calls.append(kwargs)
        if self.fail_receive_after is not None and len(self.receive_calls) > self.fail_receive_after:
            raise client_error("ReceiveMessage")
        if self.batches:
            return {"Messages": self.batches.pop(0)}
        return {}

    def delete_message(self, **kwargs):
        if self.fail_delete:
            raise client_error("DeleteMessage", "ReceiptHandleIsInvalid")
        self.deleted.append(kwargs["ReceiptHandle"])

    def send_message(self, **kwargs):
        self.sent.append(kwargs)
        return {"MessageId": f"dlq-{len(self.sent)}"}


def sqs_message(message_id: str, body: str, receive_count: int = 1) -> Dict:
    return {
        "MessageId": message_id,
        "ReceiptHandle": f"rh-{message_id}",
        "Body": body,
        "Attributes": {"ApproximateReceiveCount": str(receive_count)},
    }


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'dubstats.db'}")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def writer(engine):
    return SnapshotWriter(engine)
