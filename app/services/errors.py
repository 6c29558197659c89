"""Request-level failures raised by services and mapped to HTTP responses."""

from __future__ import annotations


class ServiceError(Exception):
  """Base class for failures the caller can act on."""

  status_code = 400
  code = "BAD_REQUEST"

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class InvalidInputError(ServiceError):
  code = "INVALID_INPUT"


class CredentialValidationError(ServiceError):
  """The provider rejected a key, or the key could not be checked."""

  code = "INVALID_API_KEY"


class ForbiddenError(ServiceError):
  status_code = 403
  code = "FORBIDDEN"


class NotFoundError(ServiceError):
  status_code = 404
  code = "NOT_FOUND"


class ConflictError(ServiceError):
  """The record is not in a state that allows the requested transition."""

  status_code = 409
  code = "CONFLICT"
