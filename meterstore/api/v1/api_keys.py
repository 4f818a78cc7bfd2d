"""API key provisioning."""

import secrets
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Request, status

from meterstore.api.deps import Storage
from meterstore.core.security import generate_api_key, hash_api_key
from meterstore.events import AddKey, AddKeyData
from meterstore.models.api_key import ApiKeyCreate, ApiKeyCreated

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


def _require_admin(request: Request, admin_token: str | None) -> None:
    expected = request.app.state.settings.admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key provisioning is disabled",
        )
    if admin_token is None or not secrets.compare_digest(admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )


@router.post(
    "",
    response_model=ApiKeyCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new API key",
)
async def create_api_key(
    body: ApiKeyCreate,
    request: Request,
    storage: Storage,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> ApiKeyCreated:
    """Generate a new API key. The raw key is returned once, so store it securely."""
    _require_admin(request, x_admin_token)

    raw_key = generate_api_key()
    event = AddKey(
        data=AddKeyData(name=body.name, key=hash_api_key(raw_key), expires_at=body.expires_at)
    )
    result = await storage.add(event)

    return ApiKeyCreated(
        id=result["id"],
        name=body.name,
        expires_at=body.expires_at,
        raw_key=raw_key,
    )
