from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.database import get_db
from app.core.firebase import verify_id_token
from app.schema.sql import User, UserRole, UserStatus
from app.services.users import get_user_by_firebase_uid

security_scheme = HTTPBearer()

_STATUS_DETAIL = {UserStatus.PENDING: "Account is awaiting administrator approval", UserStatus.DISABLED: "Account has been disabled"}


async def get_current_user(token: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)], db: AsyncSession = Depends(get_db)) -> User:  # noqa: B008
  """Verify the Firebase ID token and load the matching user."""
  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)

  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers={"WWW-Authenticate": "Bearer"})

  firebase_uid = decoded_claims.get("uid")
  if not firebase_uid:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims", headers={"WWW-Authenticate": "Bearer"})

  user = await get_user_by_firebase_uid(db, firebase_uid)
  if not user:
    # Accounts are created by the web app's registration flow.
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

  return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:  # noqa: B008
  """Block accounts an administrator has not approved, or has disabled."""
  if current_user.status != UserStatus.APPROVED:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=_STATUS_DETAIL.get(current_user.status, "Account is not active"))

  return current_user


async def get_current_admin_user(current_user: User = Depends(get_current_active_user)) -> User:  # noqa: B008
  """Require the admin role for platform settings."""
  if current_user.role != UserRole.ADMIN:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator role required")

  return current_user
