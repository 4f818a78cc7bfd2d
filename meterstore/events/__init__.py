"""Tagged event model.

``parse_event`` turns a JSON-like mapping into the matching event class,
keyed on its ``type`` field.
"""

from typing import Annotated, Any, Union

from pydantic import Field, TypeAdapter

from meterstore.events.base import SQL_ENVELOPE, BaseEvent, UserEvent
from meterstore.events.raw import AddKey, AITokenUsage, Payment, SDKCall
from meterstore.events.request import RequestAITokenUsage, RequestPayment, RequestSDKCall
from meterstore.events.types import (
    MUTATING_EVENT_TYPES,
    REQUEST_EVENT_TYPES,
    AddKeyData,
    AITokenUsageData,
    EventType,
    PaymentData,
    SDKCallData,
    SDKCallType,
)

AnyEvent = Annotated[
    Union[
        SDKCall,
        Payment,
        AITokenUsage,
        AddKey,
        RequestSDKCall,
        RequestAITokenUsage,
        RequestPayment,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[AnyEvent] = TypeAdapter(AnyEvent)


def parse_event(payload: dict[str, Any]) -> BaseEvent:
    """Build an event from its JSON form. Raises ``pydantic.ValidationError``."""
    return _event_adapter.validate_python(payload)


__all__ = [
    "AITokenUsage",
    "AITokenUsageData",
    "AddKey",
    "AddKeyData",
    "AnyEvent",
    "BaseEvent",
    "EventType",
    "MUTATING_EVENT_TYPES",
    "Payment",
    "PaymentData",
    "REQUEST_EVENT_TYPES",
    "RequestAITokenUsage",
    "RequestPayment",
    "RequestSDKCall",
    "SDKCall",
    "SDKCallData",
    "SDKCallType",
    "SQL_ENVELOPE",
    "UserEvent",
    "parse_event",
]
