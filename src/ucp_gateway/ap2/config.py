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

"""Immutable AP2 configuration.

The configuration is built once at startup (see `ucp_gateway.config`) and
passed to the signer and verifier constructors, so verification depends only
on the mandate, the expected values and this object.
"""

from typing import Optional, Tuple

from pydantic import BaseModel
from pydantic import ConfigDict

from ..exceptions import ConfigurationError
from .algorithms import SUPPORTED_ALGORITHMS

DEFAULT_CLOCK_SKEW_SECONDS = 60
DEFAULT_MANDATE_MAX_AGE_SECONDS = 600
DEFAULT_VP_FORMATS = ("sd-jwt",)


class Ap2Config(BaseModel):
  """AP2 protocol settings.

  Attributes:
    enabled: Activates hashing, signing and mandate checks.
    signing_alg: Algorithm of the gateway's checkout mandate signer.
    signing_private_key_pem: PEM private key of the checkout mandate signer.
    signing_public_key_pem: PEM public key matching the signer key.
    platform_public_key_pem: PEM key that verifies checkout mandates.
    platform_signing_alg: Algorithm accepted for checkout mandates; falls back
      to `signing_alg`.
    payment_public_key_pem: PEM key that verifies payment mandates.
    payment_signing_alg: Algorithm accepted for payment mandates; falls back
      to `signing_alg`.
    supported_vp_formats: Verifiable presentation formats advertised.
    issuer: Required `iss` claim, if set.
    audience: Required `aud` claim (exact or membership), if set.
    clock_skew_seconds: Tolerance applied to `exp`, `nbf` and `iat`.
    mandate_max_age_seconds: Lifetime of issued checkout mandates.
  """

  model_config = ConfigDict(frozen=True)

  enabled: bool = False
  signing_alg: str = "RS256"
  signing_private_key_pem: Optional[str] = None
  signing_public_key_pem: Optional[str] = None
  platform_public_key_pem: Optional[str] = None
  platform_signing_alg: Optional[str] = None
  payment_public_key_pem: Optional[str] = None
  payment_signing_alg: Optional[str] = None
  supported_vp_formats: Tuple[str, ...] = DEFAULT_VP_FORMATS
  issuer: Optional[str] = None
  audience: Optional[str] = None
  clock_skew_seconds: int = DEFAULT_CLOCK_SKEW_SECONDS
  mandate_max_age_seconds: int = DEFAULT_MANDATE_MAX_AGE_SECONDS

  def platform_algorithms(self) -> Tuple[str, ...]:
    return ((self.platform_signing_alg or self.signing_alg).upper(),)

  def payment_algorithms(self) -> Tuple[str, ...]:
    return ((self.payment_signing_alg or self.signing_alg).upper(),)

  def validate_for_startup(self) -> None:
    """Fails fast when AP2 is enabled without usable keys or algorithms.

    Raises:
      ConfigurationError: If a required key is missing or an algorithm is not
        RS256/ES256.
    """
    if not self.enabled:
      return
    if not self.signing_private_key_pem or not self.signing_public_key_pem:
      raise ConfigurationError(
          "AP2 signing keys are required when AP2 is enabled."
      )
    if not self.platform_public_key_pem:
      raise ConfigurationError(
          "The platform public key is required when AP2 is enabled."
      )
    if not self.payment_public_key_pem:
      raise ConfigurationError(
          "The payment public key is required when AP2 is enabled."
      )
    algorithms = (
        (self.signing_alg.upper(),)
        + self.platform_algorithms()
        + self.payment_algorithms()
    )
    for alg in algorithms:
      if alg not in SUPPORTED_ALGORITHMS:
        raise ConfigurationError(f"Unsupported AP2 signing algorithm: {alg}")
    if self.clock_skew_seconds < 0 or self.mandate_max_age_seconds <= 0:
      raise ConfigurationError(
          "AP2 clock skew must be >= 0 and mandate max age must be > 0."
      )
