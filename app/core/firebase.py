"""Firebase Admin setup and ID-token verification."""

import logging
from typing import Any

import firebase_admin
from firebase_admin import auth, credentials

from app.config import get_settings

logger = logging.getLogger(__name__)


def initialize_firebase() -> bool:
  """Initialize the default Firebase app once; returns whether it is available."""
  if firebase_admin._apps:
    return True

  settings = get_settings()
  if not settings.firebase_project_id:
    logger.warning("AULA_FIREBASE_PROJECT_ID is not set; every bearer token will be rejected.")
    return False

  options = {"projectId": settings.firebase_project_id}
  try:
    if settings.firebase_service_account_json_path:
      firebase_admin.initialize_app(credentials.Certificate(settings.firebase_service_account_json_path), options)
    else:
      # Application Default Credentials
      firebase_admin.initialize_app(options=options)
  except (ValueError, OSError) as exc:
    logger.error("Firebase Admin SDK initialization failed project_id=%s: %s", settings.firebase_project_id, exc)
    return False
  logger.info("Firebase Admin SDK initialized project_id=%s", settings.firebase_project_id)
  return True


def verify_id_token(id_token: str) -> dict[str, Any] | None:
  """Return the decoded claims, or None for any token that must not authenticate.

  Revoked sessions are rejected, so disabling an account in Firebase takes
  effect before the token expires.
  """
  if not initialize_firebase():
    return None

  try:
    return auth.verify_id_token(id_token, check_revoked=True)
  except auth.ExpiredIdTokenError:
    logger.info("Rejected expired ID token")
  except auth.RevokedIdTokenError:
    logger.warning("Rejected revoked ID token")
  except auth.UserDisabledError:
    logger.warning("Rejected ID token of a disabled Firebase user")
  except (auth.InvalidIdTokenError, ValueError) as exc:
    logger.warning("Rejected invalid ID token: %s", exc)
  except auth.CertificateFetchError as exc:
    logger.error("Could not fetch Firebase signing certificates: %s", exc)
  return None
