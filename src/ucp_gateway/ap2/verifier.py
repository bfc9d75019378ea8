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

"""Verifies platform checkout mandates and payment processor mandates.

Checks run in a fixed order and the first failure raises:

1. the mandate decodes (`MalformedMandateError`);
2. the header algorithm is allowed for the role (`UnsupportedAlgorithmError`);
3. the signature verifies over the received signing input
   (`SignatureInvalidError`);
4. `exp`, `nbf` and `iat` hold within the clock skew;
5. `iss` and `aud` match when configured;
6. for checkout mandates only, `checkout_hash`, `session_id` and `nonce`
   match the session.
"""

import math
from numbers import Real
from typing import Any, Dict, Optional, Sequence

from ..enums import SignatureAlgorithm
from ..exceptions import AudienceMismatchError
from ..exceptions import ConfigurationError
from ..exceptions import ExpiredError
from ..exceptions import HashMismatchError
from ..exceptions import IssuedInFutureError
from ..exceptions import IssuerMismatchError
from ..exceptions import MalformedMandateError
from ..exceptions import NonceMismatchError
from ..exceptions import NotYetValidError
from ..exceptions import SessionMismatchError
from ..exceptions import SignatureInvalidError
from ..exceptions import UnsupportedAlgorithmError
from . import algorithms
from .clock import Clock
from .clock import system_clock
from .codec import decode_mandate
from .config import Ap2Config


def _numeric_claim(payload: Dict[str, Any], name: str) -> Optional[Real]:
  value = payload.get(name)
  if not isinstance(value, Real) or isinstance(value, bool):
    return None
  if not math.isfinite(value):
    raise MalformedMandateError(f"Mandate claim {name} is not finite.")
  return value


def _load_public_key(
    pem: Optional[str], role: str, allowed: Sequence[str]
) -> Optional[algorithms.PublicKey]:
  """Parses a role key and checks it fits every algorithm the role allows."""
  if not pem:
    return None
  try:
    key = algorithms.load_public_key(pem)
    for alg in allowed:
      algorithms.check_key_matches(algorithms.normalize_algorithm(alg), key)
  except ValueError as e:
    raise ConfigurationError(f"Invalid AP2 {role} public key: {e}") from e
  return key


class MandateVerifier:
  """Verifies mandates against the configured public keys."""

  def __init__(self, config: Ap2Config, clock: Clock = system_clock):
    self._config = config
    self._clock = clock
    self._platform_key = _load_public_key(
        config.platform_public_key_pem,
        "platform",
        config.platform_algorithms(),
    )
    self._payment_key = _load_public_key(
        config.payment_public_key_pem,
        "payment",
        config.payment_algorithms(),
    )

  def _verify_signed(
      self,
      mandate: Any,
      public_key: Optional[algorithms.PublicKey],
      allowed: Sequence[str],
      role: str,
  ) -> Dict[str, Any]:
    if public_key is None:
      raise ConfigurationError(
          f"An AP2 {role} public key is required for mandate verification."
      )
    decoded = decode_mandate(mandate)
    alg = decoded.algorithm
    if alg not in allowed or alg not in algorithms.SUPPORTED_ALGORITHMS:
      raise UnsupportedAlgorithmError(
          f"Unsupported {role} mandate algorithm: {alg or 'missing'}"
      )
    if not algorithms.verify(
        SignatureAlgorithm(alg),
        public_key,
        decoded.signing_input,
        decoded.signature,
    ):
      raise SignatureInvalidError(
          f"{role.capitalize()} mandate signature verification failed."
      )
    self._validate_claims(decoded.payload)
    return decoded.payload

  def _validate_claims(self, payload: Dict[str, Any]) -> None:
    skew = self._config.clock_skew_seconds
    now = self._clock()

    exp = _numeric_claim(payload, "exp")
    if exp is not None and now > exp + skew:
      raise ExpiredError("Mandate has expired.")
    nbf = _numeric_claim(payload, "nbf")
    if nbf is not None and now + skew < nbf:
      raise NotYetValidError("Mandate is not yet valid.")
    iat = _numeric_claim(payload, "iat")
    if iat is not None and now + skew < iat:
      raise IssuedInFutureError("Mandate was issued in the future.")

    if self._config.issuer and payload.get("iss") != self._config.issuer:
      raise IssuerMismatchError("Mandate issuer mismatch.")
    if self._config.audience:
      aud = payload.get("aud")
      if isinstance(aud, list):
        if self._config.audience not in aud:
          raise AudienceMismatchError("Mandate audience mismatch.")
      elif aud != self._config.audience:
        raise AudienceMismatchError("Mandate audience mismatch.")

  def verify_checkout_mandate(
      self,
      mandate: Any,
      expected_hash: str,
      session_id: str,
      nonce: str,
  ) -> Dict[str, Any]:
    """Verifies a platform-signed checkout mandate against a session.

    Args:
      mandate: The compact mandate string.
      expected_hash: The session's current checkout state hash.
      session_id: The session id the mandate must be bound to.
      nonce: The session's checkout nonce.

    Returns:
      The verified claim set.

    Raises:
      MandateError: A subclass naming the first check that failed.
      ConfigurationError: If no platform public key is configured.
    """
    payload = self._verify_signed(
        mandate,
        self._platform_key,
        self._config.platform_algorithms(),
        "checkout",
    )
    if payload.get("checkout_hash") != expected_hash:
      raise HashMismatchError(
          "checkout_mandate hash does not match current checkout state."
      )
    if payload.get("session_id") != session_id:
      raise SessionMismatchError("checkout_mandate session_id mismatch.")
    if payload.get("nonce") != nonce:
      raise NonceMismatchError("checkout_mandate nonce mismatch.")
    return payload

  def verify_payment_mandate(self, mandate: Any) -> Dict[str, Any]:
    """Verifies a payment processor mandate (signature and claims only)."""
    return self._verify_signed(
        mandate,
        self._payment_key,
        self._config.payment_algorithms(),
        "payment",
    )
