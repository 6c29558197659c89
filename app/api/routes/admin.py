from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from app.api.deps import get_credential_store, get_usage_ledger
from app.api.models import ApiKeyStatusResponse, ApiKeyUpdateRequest, UsageStatsResponse
from app.config import Settings, get_settings
from app.core.security import get_current_admin_user
from app.schema.sql import User
from app.services.credentials import CredentialStore
from app.services.quotas import UsageLedger

router = APIRouter()


@router.get("/gemini-key", response_model=ApiKeyStatusResponse)
async def get_gemini_key_status(
  _admin: User = Depends(get_current_admin_user),  # noqa: B008
  credentials: CredentialStore = Depends(get_credential_store),  # noqa: B008
) -> ApiKeyStatusResponse:
  return ApiKeyStatusResponse.from_status(await credentials.system_key_status())


@router.put("/gemini-key", response_model=ApiKeyStatusResponse)
async def save_gemini_key(
  payload: ApiKeyUpdateRequest,
  _admin: User = Depends(get_current_admin_user),  # noqa: B008
  credentials: CredentialStore = Depends(get_credential_store),  # noqa: B008
) -> ApiKeyStatusResponse:
  """Validate and store the shared fallback key used by accounts without their own key."""
  return ApiKeyStatusResponse.from_status(await credentials.save_system_key(payload.api_key))


@router.delete("/gemini-key", status_code=status.HTTP_204_NO_CONTENT)
async def remove_gemini_key(
  _admin: User = Depends(get_current_admin_user),  # noqa: B008
  credentials: CredentialStore = Depends(get_credential_store),  # noqa: B008
) -> Response:
  await credentials.remove_system_key()
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/gemini-usage", response_model=UsageStatsResponse)
async def get_gemini_usage(
  _admin: User = Depends(get_current_admin_user),  # noqa: B008
  ledger: UsageLedger = Depends(get_usage_ledger),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> UsageStatsResponse:
  """Platform-wide fallback usage today and since the ledger began."""
  stats = await ledger.usage_stats()
  return UsageStatsResponse(today_count=stats.today_count, total_count=stats.total_count, daily_limit=settings.fallback_daily_limit)
