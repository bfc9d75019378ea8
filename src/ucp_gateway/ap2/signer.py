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

"""Issues platform-side checkout mandates."""

from typing import Any, Dict, Optional, Tuple

from ..enums import SignatureAlgorithm
from ..exceptions import SigningConfigError
from . import algorithms
from .clock import Clock
from .clock import system_clock
from .codec import JWT_TYPE
from .codec import attach_signature
from .codec import encode_signing_input
from .config import Ap2Config


def sign_mandate(
    payload: Dict[str, Any],
    private_key: algorithms.PrivateKey,
    alg: SignatureAlgorithm,
) -> str:
  """Signs a claim set and returns the compact mandate."""
  signing_input = encode_signing_input(
      {"alg": alg.value, "typ": JWT_TYPE}, payload
  )
  signature = algorithms.sign(alg, private_key, signing_input.encode("ascii"))
  return attach_signature(signing_input, signature)


class MandateSigner:
  """Signs checkout state hashes with the gateway's private key."""

  def __init__(self, config: Ap2Config, clock: Clock = system_clock):
    self._config = config
    self._clock = clock
    self._key: Optional[algorithms.PrivateKey] = None
    self._alg: Optional[SignatureAlgorithm] = None

  def _signing_key(
      self,
  ) -> Tuple[SignatureAlgorithm, algorithms.PrivateKey]:
    if self._key is not None:
      return self._alg, self._key
    try:
      alg = algorithms.normalize_algorithm(self._config.signing_alg)
    except ValueError as e:
      raise SigningConfigError(
          f"Unsupported AP2 signing algorithm: {self._config.signing_alg}"
      ) from e
    if not self._config.signing_private_key_pem:
      raise SigningConfigError("No AP2 signing private key is configured.")
    try:
      key = algorithms.load_private_key(self._config.signing_private_key_pem)
      algorithms.check_key_matches(alg, key)
    except ValueError as e:
      raise SigningConfigError(f"Invalid AP2 signing key: {e}") from e
    self._alg, self._key = alg, key
    return alg, key

  def ensure_ready(self) -> None:
    """Loads the signing key, raising `SigningConfigError` if unusable."""
    self._signing_key()

  def sign(self, payload: Dict[str, Any]) -> str:
    alg, key = self._signing_key()
    return sign_mandate(payload, key, alg)

  def issue_checkout_mandate(
      self, checkout_hash: str, session_id: str, nonce: str
  ) -> str:
    """Binds a checkout hash to a session and nonce.

    Args:
      checkout_hash: Hex SHA-256 of the canonical checkout state.
      session_id: The checkout session id.
      nonce: The session's checkout nonce.

    Returns:
      The signed mandate, valid for the configured max age.

    Raises:
      SigningConfigError: If no usable key or algorithm is configured.
    """
    iat = self._clock()
    return self.sign({
        "checkout_hash": checkout_hash,
        "session_id": session_id,
        "nonce": nonce,
        "iat": iat,
        "exp": iat + self._config.mandate_max_age_seconds,
    })
