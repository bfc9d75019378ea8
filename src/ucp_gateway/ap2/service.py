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

"""AP2 operations on checkout sessions.

`Ap2Service` recomputes the checkout state hash and issues a fresh checkout
mandate whenever session data changes, and verifies the checkout and payment
mandates presented at completion.
"""

import logging
import secrets
from typing import Any, Callable, Dict, Optional

from ..exceptions import AlreadyVerifiedError
from ..exceptions import MandateError
from ..exceptions import NonceMissingError
from ..models import CheckoutSessionRecord
from .canonical import build_checkout_state
from .canonical import hash_checkout_state
from .clock import Clock
from .clock import system_clock
from .config import Ap2Config
from .nonce import generate_nonce
from .signer import MandateSigner
from .verifier import MandateVerifier

logger = logging.getLogger(__name__)


class Ap2Service:
  """Encapsulates AP2 mandate operations for checkout sessions."""

  def __init__(
      self,
      config: Ap2Config,
      signer: Optional[MandateSigner] = None,
      verifier: Optional[MandateVerifier] = None,
      clock: Clock = system_clock,
      random_bytes: Callable[[int], bytes] = secrets.token_bytes,
  ):
    self.config = config
    self.signer = signer or MandateSigner(config, clock=clock)
    self.verifier = verifier or MandateVerifier(config, clock=clock)
    self._random_bytes = random_bytes
    if config.enabled:
      self.signer.ensure_ready()

  @property
  def enabled(self) -> bool:
    return self.config.enabled

  def compute_state_patch(
      self, record: CheckoutSessionRecord
  ) -> Dict[str, Any]:
    """Computes the AP2 fields to persist on a session.

    The nonce is generated on first use and reused afterwards. Hash and
    signature are always computed together.
    """
    nonce = record.checkout_nonce or generate_nonce(self._random_bytes)
    state_hash = hash_checkout_state(build_checkout_state(record, nonce))
    signature = self.signer.issue_checkout_mandate(state_hash, record.id, nonce)
    return {
        "ap2_activated": True,
        "checkout_nonce": nonce,
        "checkout_state_hash": state_hash,
        "checkout_signature": signature,
        "supported_vp_formats": list(self.config.supported_vp_formats),
    }

  def verify_mandates(
      self,
      record: CheckoutSessionRecord,
      checkout_mandate: Any,
      payment_mandate: Any,
  ) -> None:
    """Verifies both mandates against the session's current state.

    Args:
      record: The session being completed.
      checkout_mandate: Platform-signed checkout mandate.
      payment_mandate: Payment processor mandate.

    Raises:
      AlreadyVerifiedError: If mandates were already consumed.
      NonceMissingError: If the session has no checkout nonce.
      MandateError: If either mandate fails verification.
    """
    if record.mandate_verified_at is not None:
      raise AlreadyVerifiedError(
          "AP2 mandates already verified for this session."
      )
    if not record.checkout_nonce:
      raise NonceMissingError(
          "AP2 checkout nonce is missing for this session."
      )
    expected_hash = record.checkout_state_hash or hash_checkout_state(
        build_checkout_state(record)
    )

    logger.info("ap2_mandate_verification_attempt session=%s", record.id)
    try:
      self.verifier.verify_checkout_mandate(
          checkout_mandate, expected_hash, record.id, record.checkout_nonce
      )
      self.verifier.verify_payment_mandate(payment_mandate)
    except MandateError as e:
      logger.warning(
          "ap2_mandate_verification_failed session=%s code=%s",
          record.id,
          e.code,
      )
      raise
    logger.info("ap2_mandate_verification_success session=%s", record.id)
