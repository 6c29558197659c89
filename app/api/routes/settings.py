from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from app.ai.providers.base import FALLBACK_PROVIDER
from app.api.deps import get_credential_store, get_usage_ledger
from app.api.models import ApiKeyStatusResponse, ApiKeyUpdateRequest, QuotaResponse
from app.core.security import get_current_active_user
from app.schema.sql import User
from app.services.credentials import CredentialStore
from app.services.quotas import UsageLedger

router = APIRouter()


@router.get("/api-key", response_model=ApiKeyStatusResponse)
async def get_api_key_status(
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  credentials: CredentialStore = Depends(get_credential_store),  # noqa: B008
) -> ApiKeyStatusResponse:
  """Report whether a personal Anthropic key is stored; only a masked prefix is returned."""
  return ApiKeyStatusResponse.from_status(await credentials.personal_key_status(current_user.id))


@router.put("/api-key", response_model=ApiKeyStatusResponse)
async def save_api_key(
  payload: ApiKeyUpdateRequest,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  credentials: CredentialStore = Depends(get_credential_store),  # noqa: B008
) -> ApiKeyStatusResponse:
  """Validate the key against Anthropic and store it encrypted."""
  return ApiKeyStatusResponse.from_status(await credentials.save_personal_key(current_user.id, payload.api_key))


@router.delete("/api-key", status_code=status.HTTP_204_NO_CONTENT)
async def remove_api_key(
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  credentials: CredentialStore = Depends(get_credential_store),  # noqa: B008
) -> Response:
  await credentials.remove_personal_key(current_user.id)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/quota", response_model=QuotaResponse)
async def get_quota(
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  ledger: UsageLedger = Depends(get_usage_ledger),  # noqa: B008
) -> QuotaResponse:
  """Today's usage of the shared fallback provider for the caller."""
  quota = await ledger.check_quota(current_user.id, FALLBACK_PROVIDER)
  return QuotaResponse(provider=FALLBACK_PROVIDER.value, used=quota.used, reserved=quota.reserved, limit=quota.limit, remaining=quota.remaining, resets_at=quota.resets_at)
