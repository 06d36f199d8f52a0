# src/llmsentinel/consumer/message.py
"""
Inbound messages and their decoding into TelemetryEvents.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol, Union

from pydantic import ValidationError

from ..exceptions import MessageParseError
from ..models import TelemetryEvent

REQUIRED_FIELDS = (("requestId", "request_id"), ("timestamp", "timestamp"))


class InboundMessage(Protocol):
    """What the pipeline needs from a transport message."""

    message_id: str
    data: Union[bytes, str]

    def ack(self) -> None: ...

    def nack(self) -> None: ...


@dataclass
class QueueMessage:
    """
    A message on the in-process queue.

    ``ack()``/``nack()`` record the outcome; the QueueConsumer reads it to
    decide on redelivery. The first settlement wins.
    """

    data: Union[bytes, str]
    message_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempts: int = 1
    outcome: Optional[str] = None

    def ack(self) -> None:
        if self.outcome is None:
            self.outcome = "ack"

    def nack(self) -> None:
        if self.outcome is None:
            self.outcome = "nack"

    @property
    def acked(self) -> bool:
        return self.outcome == "ack"

    @property
    def nacked(self) -> bool:
        return self.outcome == "nack"

    def redelivery(self) -> "QueueMessage":
        """A fresh copy for the next delivery attempt."""
        return QueueMessage(data=self.data, message_id=self.message_id, attempts=self.attempts + 1)


def parse_message(message: InboundMessage) -> TelemetryEvent:
    """
    Decode a message payload into a TelemetryEvent.

    Raises:
        MessageParseError: On undecodable bytes, invalid JSON, a non-object
            payload, missing ``requestId``/``timestamp`` or schema violations.
    """
    message_id = getattr(message, "message_id", None)
    raw = message.data
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        payload = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageParseError(f"Invalid JSON payload: {e}", message_id=message_id) from e

    if not isinstance(payload, dict):
        raise MessageParseError("Telemetry payload must be a JSON object", message_id=message_id)

    for camel, snake in REQUIRED_FIELDS:
        if not payload.get(camel) and not payload.get(snake):
            raise MessageParseError(f"Invalid telemetry event: missing required field '{camel}'", message_id=message_id)

    try:
        return TelemetryEvent.model_validate(payload)
    except ValidationError as e:
        raise MessageParseError(f"Invalid telemetry event: {e.error_count()} validation error(s): {e}", message_id=message_id) from e
