#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Custom exceptions for the UCP gateway.

Every error raised by the gateway derives from `UcpError`, which carries a
machine-readable `code` and the HTTP status the server maps it to. AP2
verification failures derive from `MandateError` and are always fail-closed.
"""

from typing import Optional


class UcpError(Exception):
  """Base class for all UCP exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class ResourceNotFoundError(UcpError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class InvalidRequestError(UcpError):
  """Raised when the request is invalid (e.g. missing fields)."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class IllegalStateTransitionError(UcpError):
  """Raised when a session status change violates the state machine."""

  def __init__(self, message: str, code: str = "ILLEGAL_STATE_TRANSITION"):
    super().__init__(message, code=code, status_code=409)


class CheckoutNotModifiableError(IllegalStateTransitionError):
  """Raised when attempting to modify a checkout in a terminal state."""

  def __init__(self, message: str):
    super().__init__(message, code="CHECKOUT_NOT_MODIFIABLE")


class UpstreamError(UcpError):
  """Raised when the order-placement backend fails or is unreachable."""

  def __init__(
      self,
      message: str,
      upstream_status: Optional[int] = None,
      upstream_body: Optional[dict] = None,
  ):
    self.upstream_status = upstream_status
    self.upstream_body = upstream_body
    super().__init__(message, code="UPSTREAM_ERROR", status_code=502)


# --- Configuration ---


class ConfigurationError(UcpError):
  """Raised when keys or algorithms are missing or invalid."""

  def __init__(self, message: str, code: str = "CONFIGURATION_ERROR"):
    super().__init__(message, code=code, status_code=500)


class SigningConfigError(ConfigurationError):
  """Raised when the checkout mandate signer cannot be used."""

  def __init__(self, message: str):
    super().__init__(message, code="SIGNING_CONFIG_ERROR")


# --- AP2 mandates ---


class MandateError(UcpError):
  """Base class for mandate verification failures."""

  code = "MANDATE_INVALID"

  def __init__(self, message: str):
    super().__init__(message, code=type(self).code, status_code=400)


class MandateRequiredError(MandateError):
  code = "MANDATE_REQUIRED"


class MalformedMandateError(MandateError):
  code = "MANDATE_MALFORMED"


class UnsupportedAlgorithmError(MandateError):
  code = "MANDATE_UNSUPPORTED_ALGORITHM"


class SignatureInvalidError(MandateError):
  code = "MANDATE_INVALID_SIGNATURE"


class ExpiredError(MandateError):
  code = "MANDATE_EXPIRED"


class NotYetValidError(MandateError):
  code = "MANDATE_NOT_YET_VALID"


class IssuedInFutureError(MandateError):
  code = "MANDATE_ISSUED_IN_FUTURE"


class IssuerMismatchError(MandateError):
  code = "MANDATE_ISSUER_MISMATCH"


class AudienceMismatchError(MandateError):
  code = "MANDATE_AUDIENCE_MISMATCH"


class HashMismatchError(MandateError):
  code = "MANDATE_HASH_MISMATCH"


class SessionMismatchError(MandateError):
  code = "MANDATE_SESSION_MISMATCH"


class NonceMismatchError(MandateError):
  code = "MANDATE_NONCE_MISMATCH"


class AlreadyVerifiedError(UcpError):
  """Raised when mandates were already consumed for a session."""

  def __init__(self, message: str):
    super().__init__(message, code="MANDATE_ALREADY_VERIFIED", status_code=409)


class NonceMissingError(UcpError):
  """Raised when a session has no checkout nonce to bind mandates to."""

  def __init__(self, message: str):
    super().__init__(message, code="NONCE_MISSING", status_code=409)
