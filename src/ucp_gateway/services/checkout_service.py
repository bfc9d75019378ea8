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

"""Checkout service for managing the lifecycle of checkout sessions.

This module provides the `CheckoutService` class, which orchestrates checkout
sessions on top of a Magento guest cart.

Key responsibilities include:
- Creating sessions and mirroring line items into the Magento cart.
- Applying buyer and shipping updates and refreshing totals.
- Recomputing the AP2 checkout state hash and issuing a fresh checkout
  mandate whenever session data changes.
- Gating order placement on successful verification of the checkout and
  payment mandates, which are consumed at most once per session.
- Driving the session status through `SessionStateMachine`.

Every mutating operation runs under the session's lock, so the status and
verification checks and the writes that follow them are never interleaved
for the same session.
"""

import datetime
import logging
from typing import Any, Callable, Dict, List, Optional
import uuid

from ..ap2.service import Ap2Service
from ..config import GatewayConfig
from ..enums import CheckoutStatus
from ..enums import MessageSeverity
from ..enums import TERMINAL_STATUSES
from ..exceptions import IllegalStateTransitionError
from ..exceptions import InvalidRequestError
from ..exceptions import MandateRequiredError
from ..exceptions import ResourceNotFoundError
from ..magento_client import MagentoClient
from ..magento_client import to_magento_address
from ..models import CheckoutSessionRecord
from ..models import CompleteCheckoutSessionRequest
from ..models import CreateCheckoutSessionRequest
from ..models import Message
from ..models import UpdateCheckoutSessionRequest
from ..session_store import SessionLocks
from ..session_store import SessionRepository
from ..state_machine import SessionStateMachine
from ..ucp_mapper import message
from ..ucp_mapper import to_ucp_session

logger = logging.getLogger(__name__)


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.timezone.utc)


class CheckoutService:
  """Service for managing checkout sessions and placing orders."""

  def __init__(
      self,
      magento: MagentoClient,
      ap2_service: Ap2Service,
      repository: SessionRepository,
      config: GatewayConfig,
      locks: Optional[SessionLocks] = None,
      now: Callable[[], datetime.datetime] = _utc_now,
  ):
    self.magento = magento
    self.ap2 = ap2_service
    self.repository = repository
    self.config = config
    self.locks = locks or SessionLocks()
    self._now = now

  async def get_record(self, session_id: str) -> CheckoutSessionRecord:
    """Retrieves a session record or raises `ResourceNotFoundError`."""
    record = await self.repository.get(session_id)
    if record is None:
      raise ResourceNotFoundError(f"Unknown checkout session: {session_id}")
    return record

  async def _apply(
      self, record: CheckoutSessionRecord, patch: Dict[str, Any]
  ) -> CheckoutSessionRecord:
    """Persists a partial update and bumps `updated_at`."""
    new_nonce = patch.get("checkout_nonce")
    if (
        record.checkout_nonce
        and new_nonce is not None
        and new_nonce != record.checkout_nonce
    ):
      raise IllegalStateTransitionError(
          "The checkout nonce of a session cannot change"
      )
    updated = record.model_copy(update={**patch, "updated_at": self._now()})
    await self.repository.save(updated)
    return updated

  def _with_state_signature(
      self, record: CheckoutSessionRecord, patch: Dict[str, Any]
  ) -> Dict[str, Any]:
    """Adds a fresh AP2 hash and signature for the patched record."""
    if not self.ap2.enabled:
      return patch
    candidate = record.model_copy(update=patch)
    return {**patch, **self.ap2.compute_state_patch(candidate)}

  def _ap2_required(self, record: CheckoutSessionRecord) -> bool:
    return self.ap2.enabled or record.ap2_activated

  def _render(
      self,
      record: CheckoutSessionRecord,
      totals: Optional[Dict[str, Any]] = None,
      shipping_methods: Optional[List[Dict[str, Any]]] = None,
      messages: Optional[List[Message]] = None,
  ) -> Dict[str, Any]:
    return to_ucp_session(
        record,
        self.config.base_url,
        totals=totals,
        shipping_methods=shipping_methods,
        messages=messages or [],
        default_vp_formats=self.ap2.config.supported_vp_formats,
        expose_debug=self.config.expose_debug,
    )

  async def create(
      self, request: CreateCheckoutSessionRequest
  ) -> Dict[str, Any]:
    """Creates a Magento guest cart, adds the items and opens a session."""
    logger.info("Creating checkout session")
    cart_id = await self.magento.create_guest_cart()
    for li in request.line_items:
      await self.magento.add_item(cart_id, li.sku, li.quantity)
    totals = await self.magento.get_totals(cart_id)

    now = self._now()
    record = CheckoutSessionRecord(
        id=str(uuid.uuid4()),
        cart_id=cart_id,
        created_at=now,
        updated_at=now,
        items=request.line_items,
        buyer_email=request.buyer.email if request.buyer else None,
        last_totals=totals,
    )
    record = record.model_copy(update=self._with_state_signature(record, {}))
    await self.repository.save(record)
    logger.info("Created checkout session %s", record.id)

    return self._render(
        record,
        totals=totals,
        messages=[
            message(
                MessageSeverity.INFO, "created", "Checkout session created."
            )
        ],
    )

  async def get(self, session_id: str) -> Dict[str, Any]:
    """Returns the session, refreshing totals while it is still open.

    When the refreshed totals differ from the stored ones, the checkout state
    hash and signature are reissued.
    """
    async with self.locks.hold(session_id):
      record = await self.get_record(session_id)
      if (
          record.status in TERMINAL_STATUSES
          or record.status == CheckoutStatus.COMPLETE_IN_PROGRESS
          or record.mandate_verified_at is not None
      ):
        return self._render(record)

      totals = await self.magento.get_totals(record.cart_id)
      if totals != record.last_totals:
        patch = self._with_state_signature(record, {"last_totals": totals})
        record = await self._apply(record, patch)
      return self._render(record, totals=totals)

  async def update(
      self, session_id: str, request: UpdateCheckoutSessionRequest
  ) -> Dict[str, Any]:
    """Updates buyer email, shipping address and/or shipping method."""
    logger.info("Updating checkout session %s", session_id)
    if request.shipping_method and not request.shipping_address:
      raise InvalidRequestError(
          "shipping_method update requires shipping_address in the same"
          " request."
      )

    async with self.locks.hold(session_id):
      record = await self.get_record(session_id)
      state = SessionStateMachine(record)
      state.ensure_modifiable("update")

      messages: List[Message] = []
      patch: Dict[str, Any] = {}
      email = request.buyer.email if request.buyer else None
      if email:
        patch["buyer_email"] = email
        messages.append(
            message(
                MessageSeverity.INFO, "buyer_updated", "Buyer email updated."
            )
        )
      email = email or record.buyer_email

      if request.shipping_address:
        patch["shipping_address"] = request.shipping_address
        methods = await self.magento.estimate_shipping_methods(
            record.cart_id, to_magento_address(request.shipping_address, email)
        )
        patch["last_shipping_methods"] = methods
        messages.append(
            message(
                MessageSeverity.INFO,
                "shipping_methods_available",
                "Shipping methods estimated. Select one via shipping_method.",
            )
        )

      if request.shipping_method:
        result = await self.magento.set_shipping_information(
            record.cart_id,
            to_magento_address(request.shipping_address, email),
            request.shipping_method.carrier_code,
            request.shipping_method.method_code,
        )
        totals = None
        if isinstance(result, dict):
          totals = result.get("totals")
        if not totals:
          totals = await self.magento.get_totals(record.cart_id)
        patch["shipping_method"] = request.shipping_method
        messages.append(
            message(
                MessageSeverity.INFO,
                "shipping_selected",
                "Shipping method selected.",
            )
        )
      else:
        totals = await self.magento.get_totals(record.cart_id)
      patch["last_totals"] = totals

      patch.update(
          state.evaluate_readiness(
              email, request.shipping_method or record.shipping_method
          )
      )
      record = await self._apply(
          record, self._with_state_signature(record, patch)
      )
      return self._render(record, totals=totals, messages=messages)

  async def complete(
      self, session_id: str, request: CompleteCheckoutSessionRequest
  ) -> Dict[str, Any]:
    """Verifies AP2 mandates (when active) and places the Magento order.

    A session that is already completed is returned unchanged, without
    verifying mandates or placing another order.

    Raises:
      IllegalStateTransitionError: If the session cannot be completed from
        its current status.
      MandateRequiredError: If AP2 is active and a mandate is missing.
      MandateError: If a mandate fails verification.
      AlreadyVerifiedError: If the mandates were already consumed.
      UpstreamError: If order placement fails; the session is moved to
        `requires_escalation` first.
    """
    logger.info("Completing checkout session %s", session_id)
    async with self.locks.hold(session_id):
      record = await self.get_record(session_id)
      if record.status == CheckoutStatus.COMPLETED:
        return self._render(record)
      SessionStateMachine(record).ensure_completable()

      if self._ap2_required(record) and record.mandate_verified_at is None:
        if not request.checkout_mandate or not request.payment_mandate:
          raise MandateRequiredError(
              "AP2 mandates are required to complete this session."
          )
        self.ap2.verify_mandates(
            record, request.checkout_mandate, request.payment_mandate
        )
        record = await self._apply(
            record,
            SessionStateMachine(record).mark_mandates_verified(self._now()),
        )

      if not self.config.payment_method_code:
        return await self._escalate(
            record,
            "payment_required",
            "Payment requires buyer handoff. Follow continue_url to complete"
            " in merchant checkout.",
        )
      if not record.buyer_email or not record.shipping_address:
        return await self._escalate(
            record,
            "missing_checkout_data",
            "Missing buyer email or shipping address. Continue in merchant"
            " checkout.",
        )

      record = await self._apply(
          record,
          SessionStateMachine(record).transition(
              CheckoutStatus.COMPLETE_IN_PROGRESS
          ),
      )
      billing = to_magento_address(record.shipping_address, record.buyer_email)
      try:
        order_id = await self.magento.place_order(
            record.cart_id,
            self.config.payment_method_code,
            record.buyer_email,
            billing,
        )
      except Exception:
        logger.exception(
            "Order placement failed for checkout session %s", record.id
        )
        await self._apply(
            record,
            SessionStateMachine(record).transition(
                CheckoutStatus.REQUIRES_ESCALATION
            ),
        )
        raise

      patch = SessionStateMachine(record).transition(CheckoutStatus.COMPLETED)
      patch["order_id"] = order_id
      record = await self._apply(record, patch)
      logger.info(
          "Placed order %s for checkout session %s", order_id, record.id
      )
      return self._render(
          record,
          messages=[
              message(
                  MessageSeverity.INFO,
                  "order_placed",
                  "Order placed successfully.",
              )
          ],
      )

  async def _escalate(
      self, record: CheckoutSessionRecord, code: str, text: str
  ) -> Dict[str, Any]:
    record = await self._apply(
        record,
        SessionStateMachine(record).transition(
            CheckoutStatus.REQUIRES_ESCALATION
        ),
    )
    logger.info("Checkout session %s requires escalation: %s", record.id, code)
    return self._render(
        record, messages=[message(MessageSeverity.WARNING, code, text)]
    )

  async def cancel(self, session_id: str) -> Dict[str, Any]:
    """Cancels the session without touching the Magento cart."""
    logger.info("Canceling checkout session %s", session_id)
    async with self.locks.hold(session_id):
      record = await self.get_record(session_id)
      record = await self._apply(record, SessionStateMachine(record).cancel())
      return self._render(
          record,
          messages=[
              message(MessageSeverity.INFO, "canceled", "Session canceled.")
          ],
      )
