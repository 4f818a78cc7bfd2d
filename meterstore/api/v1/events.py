"""Event ingest and price endpoints."""

from enum import StrEnum
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ValidationError

from meterstore.api.deps import ApiKeyId, Storage
from meterstore.core.errors import StorageError
from meterstore.events import (
    BaseEvent,
    EventType,
    RequestAITokenUsage,
    RequestPayment,
    RequestSDKCall,
    parse_event,
)

router = APIRouter(tags=["events"])


# ── Schemas ──────────────────────────────────────────────────

class EventCreated(BaseModel):
    id: str


class PriceKind(StrEnum):
    SDK_CALL = "sdk_call"
    AI_TOKEN_USAGE = "ai_token_usage"
    TOTAL = "total"


class PriceResponse(BaseModel):
    user_id: str
    kind: PriceKind
    amount: int


_PRICE_EVENTS: dict[PriceKind, type[BaseEvent]] = {
    PriceKind.SDK_CALL: RequestSDKCall,
    PriceKind.AI_TOKEN_USAGE: RequestAITokenUsage,
    PriceKind.TOTAL: RequestPayment,
}


def _build_event(payload: Any) -> BaseEvent:
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Event must be a JSON object",
        )
    raw_type = payload.get("type")
    if not isinstance(raw_type, str) or raw_type not in {t.value for t in EventType}:
        raise StorageError.unknown_event_type(raw_type)
    if raw_type == EventType.ADD_KEY:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="API keys are created through /v1/api-keys",
        )
    try:
        return parse_event(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc


# ── Routes ───────────────────────────────────────────────────

@router.post(
    "/events",
    response_model=EventCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Register one usage or payment event",
)
async def register_event(
    payload: dict[str, Any],
    api_key_id: ApiKeyId,
    storage: Storage,
) -> EventCreated:
    event = _build_event(payload)
    result = await storage.add(event, api_key_id=api_key_id)
    return EventCreated(id=result["id"])


@router.post(
    "/events/batch",
    response_model=EventCreated | None,
    status_code=status.HTTP_201_CREATED,
    summary="Register a batch of AI token usage events",
)
async def register_event_batch(
    payload: list[dict[str, Any]],
    api_key_id: ApiKeyId,
    storage: Storage,
) -> EventCreated | None:
    """All events land in one transaction, aggregated per (user, model)."""
    events = [_build_event(item) for item in payload]
    result = await storage.add_batch(events, api_key_id=api_key_id)
    return EventCreated(id=result["id"]) if result else None


@router.get(
    "/users/{user_id}/price",
    response_model=PriceResponse,
    summary="Amount owed by a user",
)
async def get_user_price(
    user_id: str,
    api_key_id: ApiKeyId,
    storage: Storage,
    kind: PriceKind = PriceKind.TOTAL,
) -> PriceResponse:
    try:
        request_event = _PRICE_EVENTS[kind](user_id=user_id)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid user id: {user_id}",
        ) from exc

    amount = await storage.price(request_event)
    return PriceResponse(user_id=user_id, kind=kind, amount=amount)
