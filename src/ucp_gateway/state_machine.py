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

"""Checkout session status state machine.

States advance `incomplete -> ready_for_complete -> complete_in_progress ->
{completed | requires_escalation}`. `canceled` is reachable from every
non-terminal state; `completed` and `canceled` are terminal.

The machine never writes to the store: each operation validates the change
against the session's current status and returns the patch for the checkout
service to persist. Callers must hold the session's lock (see
`session_store.SessionLocks`) between reading the record and saving the
patch, otherwise "complete at most once" and "verify at most once" do not
hold.
"""

import datetime
from typing import Any, Dict, Optional

from .enums import CheckoutStatus
from .enums import TERMINAL_STATUSES
from .exceptions import AlreadyVerifiedError
from .exceptions import CheckoutNotModifiableError
from .exceptions import IllegalStateTransitionError
from .models import CheckoutSessionRecord
from .models import ShippingMethod

_TRANSITIONS = {
    CheckoutStatus.IN_PROGRESS: frozenset({
        CheckoutStatus.IN_PROGRESS,
        CheckoutStatus.READY_FOR_COMPLETE,
        CheckoutStatus.CANCELED,
    }),
    CheckoutStatus.READY_FOR_COMPLETE: frozenset({
        CheckoutStatus.READY_FOR_COMPLETE,
        CheckoutStatus.COMPLETE_IN_PROGRESS,
        CheckoutStatus.REQUIRES_ESCALATION,
        CheckoutStatus.CANCELED,
    }),
    CheckoutStatus.REQUIRES_ESCALATION: frozenset({
        CheckoutStatus.IN_PROGRESS,
        CheckoutStatus.READY_FOR_COMPLETE,
        CheckoutStatus.REQUIRES_ESCALATION,
        CheckoutStatus.COMPLETE_IN_PROGRESS,
        CheckoutStatus.CANCELED,
    }),
    CheckoutStatus.COMPLETE_IN_PROGRESS: frozenset({
        CheckoutStatus.COMPLETED,
        CheckoutStatus.REQUIRES_ESCALATION,
        CheckoutStatus.CANCELED,
    }),
    CheckoutStatus.COMPLETED: frozenset(),
    CheckoutStatus.CANCELED: frozenset(),
}

# Statuses from which a completion request may start.
_COMPLETABLE = frozenset({
    CheckoutStatus.READY_FOR_COMPLETE,
    CheckoutStatus.REQUIRES_ESCALATION,
})


class SessionStateMachine:
  """Validates status changes for one session record."""

  def __init__(self, record: CheckoutSessionRecord):
    self._record = record

  @property
  def status(self) -> CheckoutStatus:
    return self._record.status

  @property
  def is_terminal(self) -> bool:
    return self._record.status in TERMINAL_STATUSES

  def can_transition(self, target: CheckoutStatus) -> bool:
    return target in _TRANSITIONS[self._record.status]

  def transition(self, target: CheckoutStatus) -> Dict[str, Any]:
    """Returns the patch moving the session to `target`.

    Raises:
      IllegalStateTransitionError: If the move is not allowed.
    """
    if not self.can_transition(target):
      raise IllegalStateTransitionError(
          f"Cannot move checkout from '{self.status.value}' to"
          f" '{target.value}'"
      )
    return {"status": target}

  def ensure_modifiable(self, action: str) -> None:
    """Rejects buyer/shipping changes once a session is final or locked."""
    if self.is_terminal or self.status == CheckoutStatus.COMPLETE_IN_PROGRESS:
      raise CheckoutNotModifiableError(
          f"Cannot {action} checkout in state '{self.status.value}'"
      )
    if self._record.mandate_verified_at is not None:
      raise CheckoutNotModifiableError(
          f"Cannot {action} checkout after AP2 mandates were verified"
      )

  def evaluate_readiness(
      self,
      buyer_email: Optional[str],
      shipping_method: Optional[ShippingMethod],
  ) -> Dict[str, Any]:
    """Returns the patch for the status implied by buyer and shipping data."""
    if buyer_email and shipping_method:
      return self.transition(CheckoutStatus.READY_FOR_COMPLETE)
    return self.transition(CheckoutStatus.IN_PROGRESS)

  def cancel(self) -> Dict[str, Any]:
    if self.is_terminal:
      raise CheckoutNotModifiableError(
          f"Cannot cancel checkout in state '{self.status.value}'"
      )
    return self.transition(CheckoutStatus.CANCELED)

  def ensure_completable(self) -> None:
    """Rejects completion requests that must not start.

    Completed sessions are handled by the caller before this check, since a
    repeated completion returns the existing record.
    """
    if self.status in _COMPLETABLE:
      return
    if self.status == CheckoutStatus.IN_PROGRESS:
      raise IllegalStateTransitionError(
          "Cannot complete checkout before a buyer email and shipping method"
          " are set"
      )
    raise CheckoutNotModifiableError(
        f"Cannot complete checkout in state '{self.status.value}'"
    )

  def mark_mandates_verified(
      self, verified_at: datetime.datetime
  ) -> Dict[str, Any]:
    """Returns the patch recording the single mandate verification.

    Raises:
      AlreadyVerifiedError: If mandates were already verified.
    """
    if self._record.mandate_verified_at is not None:
      raise AlreadyVerifiedError(
          "AP2 mandates already verified for this session."
      )
    return {"mandate_verified_at": verified_at}
