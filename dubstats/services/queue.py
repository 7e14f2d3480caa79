from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Set

from botocore.exceptions import BotoCoreError, ClientError

from dubstats.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    message_id: str
    body: str
    receipt_handle: str
    receive_count: int = 1


class CommandQueue:
    """SQS work queue holding worker commands.

    Receive is a long poll bounded by ``wait_time_seconds``. Deleting a message
    is the acknowledgement; anything not deleted becomes visible again after the
    queue's visibility timeout.
    """

    def __init__(
        self,
        client: Any,
        queue_url: str,
        *,
        wait_time_seconds: int = 5,
        max_messages: int = 10,
        dead_letter_queue_url: Optional[str] = None,
    ) -> None:
        self.client = client
        self.queue_url = queue_url
        self.wait_time_seconds = max(0, min(int(wait_time_seconds), 20))
        self.max_messages = max(1, min(int(max_messages), 10))
        self.dead_letter_queue_url = dead_letter_queue_url
        self._forwarded: Set[str] = set()

    @property
    def has_dead_letter(self) -> bool:
        return bool(self.dead_letter_queue_url)

    def receive(self) -> List[QueueMessage]:
        try:
            resp = self.client.receive_message(
                QueueUrl=self.queue_url,
                WaitTimeSeconds=self.wait_time_seconds,
                MaxNumberOfMessages=self.max_messages,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (BotoCoreError, ClientError) as exc:
            raise TransportError(f"Could not receive from {self.queue_url}: {exc}", url=self.queue_url) from exc

        out: List[QueueMessage] = []
        for raw in resp.get("Messages") or []:
            attrs = raw.get("Attributes") or {}
            try:
                receive_count = int(attrs.get("ApproximateReceiveCount", 1))
            except (TypeError, ValueError):
                receive_count = 1
            out.append(
                QueueMessage(
                    message_id=raw.get("MessageId", ""),
                    body=raw.get("Body", ""),
                    receipt_handle=raw["ReceiptHandle"],
                    receive_count=receive_count,
                )
            )
        return out

    def delete(self, message: QueueMessage) -> None:
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)
        except (BotoCoreError, ClientError) as exc:
            raise TransportError(
                f"Could not delete message {message.message_id} from {self.queue_url}: {exc}",
                url=self.queue_url,
            ) from exc

    def dead_letter(self, message: QueueMessage) -> bool:
        """Move a message to the dead-letter queue. Returns False when none is configured.

        The forwarded copy carries ``OriginalMessageId``. A message whose delete
        failed after forwarding is remembered, so a redelivery only retries the
        delete instead of sending a second copy.
        """
        if not self.dead_letter_queue_url:
            return False
        if message.message_id in self._forwarded:
            logger.info("Message already forwarded, retrying delete message_id=%s", message.message_id)
        else:
            try:
                self.client.send_message(
                    QueueUrl=self.dead_letter_queue_url,
                    MessageBody=message.body,
                    MessageAttributes={
                        "OriginalMessageId": {"DataType": "String", "StringValue": message.message_id},
                    },
                )
            except (BotoCoreError, ClientError) as exc:
                raise TransportError(
                    f"Could not forward message {message.message_id} to {self.dead_letter_queue_url}: {exc}",
                    url=self.dead_letter_queue_url,
                ) from exc
            self._forwarded.add(message.message_id)

        try:
            self.delete(message)
        except TransportError as exc:
            logger.warning(
                "Forwarded message to dead-letter queue but it is still on the work queue message_id=%s: %s",
                message.message_id,
                exc,
            )
            return True
        self._forwarded.discard(message.message_id)
        logger.warning(
            "Moved message to dead-letter queue message_id=%s receive_count=%d",
            message.message_id,
            message.receive_count,
        )
        return True
