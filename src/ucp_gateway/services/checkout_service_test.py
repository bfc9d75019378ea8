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

"""Tests for the checkout service."""

import asyncio
import datetime

from absl.testing import absltest

from ucp_gateway import exceptions
from ucp_gateway.ap2.config import Ap2Config
from ucp_gateway.ap2.service import Ap2Service
from ucp_gateway.config import GatewayConfig
from ucp_gateway.models import CompleteCheckoutSessionRequest
from ucp_gateway.models import CreateCheckoutSessionRequest
from ucp_gateway.models import UpdateCheckoutSessionRequest
from ucp_gateway.services.checkout_service import CheckoutService
from ucp_gateway.session_store import InMemorySessionRepository
from ucp_gateway.integration_test import Ap2TestKeys
from ucp_gateway.integration_test import FakeMagentoClient

NOW = 1_700_000_000
_NOW_DT = datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)

ADDRESS = {
    "firstname": "Ada",
    "lastname": "Lovelace",
    "street": ["1 Main St"],
    "city": "London",
    "postcode": "N1 1AA",
    "country_id": "GB",
    "telephone": "0123456789",
}
METHOD = {"carrier_code": "flatrate", "method_code": "flatrate"}


def _gateway_config(**kwargs) -> GatewayConfig:
  fields = {
      "base_url": "https://gateway.example.com",
      "magento_base_url": "https://shop.example.com",
      "magento_store_code": "default",
      "magento_admin_token": "token",
      "payment_method_code": "checkmo",
      "api_key": "secret",
  }
  fields.update(kwargs)
  return GatewayConfig(**fields)


class CheckoutServiceTest(absltest.TestCase):

  @classmethod
  def setUpClass(cls):
    super().setUpClass()
    cls.keys = Ap2TestKeys()

  def setUp(self):
    super().setUp()
    self.magento = FakeMagentoClient()
    self.repository = InMemorySessionRepository()
    self.service = self.make_service()

  def make_service(self, ap2_config=None, **gateway_kwargs):
    ap2_service = Ap2Service(
        ap2_config or self.keys.config(), clock=lambda: NOW
    )
    return CheckoutService(
        self.magento,
        ap2_service,
        self.repository,
        _gateway_config(**gateway_kwargs),
        now=lambda: _NOW_DT,
    )

  def run_async(self, coro):
    return asyncio.run(coro)

  def create(self, service=None, email="ada@example.com"):
    request = CreateCheckoutSessionRequest(
        line_items=[{"sku": "SKU-1", "quantity": 2}],
        buyer={"email": email} if email else None,
    )
    return self.run_async((service or self.service).create(request))

  def make_ready(self, session_id, service=None):
    request = UpdateCheckoutSessionRequest(
        shipping_address=ADDRESS, shipping_method=METHOD
    )
    return self.run_async(
        (service or self.service).update(session_id, request)
    )

  def mandates(self, session, **overrides):
    return CompleteCheckoutSessionRequest(
        checkout_mandate=self.keys.checkout_mandate(
            session["ap2"]["checkout_signature"], NOW, **overrides
        ),
        payment_mandate=self.keys.payment_mandate(NOW),
    )

  def record(self, session_id):
    return self.run_async(self.repository.get(session_id))

  def test_create(self):
    session = self.create()

    self.assertEqual(session["status"], "incomplete")
    self.assertEqual(session["buyer"], {"email": "ada@example.com"})
    self.assertEqual(session["line_items"], [{"sku": "SKU-1", "quantity": 2}])
    self.assertEqual(session["totals"], {"grand_total": 20, "subtotal": 20})
    self.assertEqual(session["messages"][0]["code"], "created")
    self.assertEqual(
        session["continue_url"],
        f"https://gateway.example.com/continue/{session['id']}",
    )
    self.assertTrue(session["ap2"]["activated"])
    self.assertEqual(session["ap2"]["supported_vp_formats"], ["sd-jwt"])
    self.assertEqual(self.magento.items, [("SKU-1", 2)])

    record = self.record(session["id"])
    self.assertIsNotNone(record.checkout_nonce)
    self.assertIsNotNone(record.checkout_state_hash)
    self.assertEqual(record.cart_id, "cart-1")

  def test_update_reaches_ready_and_resigns(self):
    session = self.create()
    nonce = self.record(session["id"]).checkout_nonce

    updated = self.make_ready(session["id"])

    self.assertEqual(updated["status"], "ready_for_complete")
    self.assertEqual(updated["totals"]["grand_total"], 25)
    self.assertEqual(
        [m["code"] for m in updated["messages"]],
        ["shipping_methods_available", "shipping_selected"],
    )
    self.assertNotEqual(
        updated["ap2"]["checkout_signature"],
        session["ap2"]["checkout_signature"],
    )
    self.assertEqual(self.record(session["id"]).checkout_nonce, nonce)

  def test_address_without_method_stays_incomplete(self):
    session = self.create()
    updated = self.run_async(
        self.service.update(
            session["id"],
            UpdateCheckoutSessionRequest(shipping_address=ADDRESS),
        )
    )
    self.assertEqual(updated["status"], "incomplete")
    self.assertLen(updated["shipping_methods"], 1)

  def test_method_requires_address(self):
    session = self.create()
    calls = len(self.magento.calls)
    with self.assertRaises(exceptions.InvalidRequestError):
      self.run_async(
          self.service.update(
              session["id"],
              UpdateCheckoutSessionRequest(shipping_method=METHOD),
          )
      )
    self.assertLen(self.magento.calls, calls)

  def test_missing_email_keeps_session_incomplete(self):
    session = self.create(email=None)
    updated = self.make_ready(session["id"])
    self.assertEqual(updated["status"], "incomplete")

    updated = self.run_async(
        self.service.update(
            session["id"],
            UpdateCheckoutSessionRequest(buyer={"email": "ada@example.com"}),
        )
    )
    self.assertEqual(updated["status"], "ready_for_complete")

  def test_complete_from_incomplete_is_rejected(self):
    session = self.create()
    with self.assertRaises(exceptions.IllegalStateTransitionError):
      self.run_async(
          self.service.complete(session["id"], self.mandates(session))
      )
    record = self.record(session["id"])
    self.assertEqual(record.status.value, "incomplete")
    self.assertIsNone(record.mandate_verified_at)
    self.assertEqual(self.magento.count("place_order"), 0)

  def test_mandates_are_required(self):
    session = self.make_ready(self.create()["id"])
    with self.assertRaises(exceptions.MandateRequiredError):
      self.run_async(
          self.service.complete(
              session["id"], CompleteCheckoutSessionRequest()
          )
      )

  def test_complete_places_order_once(self):
    session = self.make_ready(self.create()["id"])
    request = self.mandates(session)

    completed = self.run_async(self.service.complete(session["id"], request))

    self.assertEqual(completed["status"], "completed")
    self.assertEqual(completed["order"], {"id": "100001"})
    self.assertEqual(completed["messages"][0]["code"], "order_placed")
    self.assertNotIn("continue_url", completed)
    self.assertEqual(
        self.record(session["id"]).mandate_verified_at, _NOW_DT
    )

    again = self.run_async(self.service.complete(session["id"], request))
    self.assertEqual(again["status"], "completed")
    self.assertEqual(again["order"], {"id": "100001"})
    self.assertEqual(self.magento.count("place_order"), 1)

  def test_concurrent_completion_places_one_order(self):
    session = self.make_ready(self.create()["id"])
    request = self.mandates(session)

    async def race():
      return await asyncio.gather(
          self.service.complete(session["id"], request),
          self.service.complete(session["id"], request),
      )

    first, second = self.run_async(race())
    self.assertEqual(first["order"], second["order"])
    self.assertEqual(self.magento.count("place_order"), 1)

  def test_stale_mandate_after_update(self):
    session = self.make_ready(self.create()["id"])
    request = self.mandates(session)
    self.run_async(
        self.service.update(
            session["id"],
            UpdateCheckoutSessionRequest(buyer={"email": "bob@example.com"}),
        )
    )

    with self.assertRaises(exceptions.HashMismatchError):
      self.run_async(self.service.complete(session["id"], request))
    record = self.record(session["id"])
    self.assertIsNone(record.mandate_verified_at)
    self.assertEqual(record.status.value, "ready_for_complete")

  def test_mandate_for_other_session(self):
    first = self.make_ready(self.create()["id"])
    second = self.make_ready(self.create()["id"])

    with self.assertRaises(exceptions.MandateError):
      self.run_async(
          self.service.complete(second["id"], self.mandates(first))
      )
    self.assertEqual(self.magento.count("place_order"), 0)

  def test_failed_order_escalates_and_can_retry(self):
    self.magento.payment_error = exceptions.UpstreamError(
        "Payment declined", upstream_status=400
    )
    session = self.make_ready(self.create()["id"])

    with self.assertRaises(exceptions.UpstreamError):
      self.run_async(
          self.service.complete(session["id"], self.mandates(session))
      )
    record = self.record(session["id"])
    self.assertEqual(record.status.value, "requires_escalation")
    self.assertIsNotNone(record.mandate_verified_at)

    self.magento.payment_error = None
    completed = self.run_async(
        self.service.complete(session["id"], CompleteCheckoutSessionRequest())
    )
    self.assertEqual(completed["status"], "completed")
    self.assertEqual(self.magento.count("place_order"), 2)

  def test_verified_session_cannot_be_updated(self):
    self.magento.payment_error = exceptions.UpstreamError("down")
    session = self.make_ready(self.create()["id"])
    with self.assertRaises(exceptions.UpstreamError):
      self.run_async(
          self.service.complete(session["id"], self.mandates(session))
      )
    with self.assertRaises(exceptions.CheckoutNotModifiableError):
      self.make_ready(session["id"])

  def test_missing_payment_method_requires_escalation(self):
    service = self.make_service(payment_method_code=None)
    session = self.make_ready(self.create(service)["id"], service)

    result = self.run_async(
        service.complete(session["id"], self.mandates(session))
    )

    self.assertEqual(result["status"], "requires_escalation")
    self.assertEqual(result["messages"][0]["code"], "payment_required")
    self.assertEqual(result["messages"][0]["severity"], "warning")
    self.assertIn("continue_url", result)
    self.assertEqual(self.magento.count("place_order"), 0)

  def test_without_ap2(self):
    service = self.make_service(ap2_config=Ap2Config())
    session = self.make_ready(self.create(service)["id"], service)
    self.assertNotIn("ap2", session)

    completed = self.run_async(
        service.complete(session["id"], CompleteCheckoutSessionRequest())
    )
    self.assertEqual(completed["status"], "completed")

  def test_cancel(self):
    session = self.create()
    canceled = self.run_async(self.service.cancel(session["id"]))
    self.assertEqual(canceled["status"], "canceled")

    with self.assertRaises(exceptions.CheckoutNotModifiableError):
      self.run_async(self.service.cancel(session["id"]))
    with self.assertRaises(exceptions.CheckoutNotModifiableError):
      self.make_ready(session["id"])
    with self.assertRaises(exceptions.CheckoutNotModifiableError):
      self.run_async(
          self.service.complete(
              session["id"], CompleteCheckoutSessionRequest()
          )
      )

  def test_completed_session_rejects_mutation(self):
    session = self.make_ready(self.create()["id"])
    self.run_async(self.service.complete(session["id"], self.mandates(session)))
    with self.assertRaises(exceptions.CheckoutNotModifiableError):
      self.make_ready(session["id"])
    with self.assertRaises(exceptions.CheckoutNotModifiableError):
      self.run_async(self.service.cancel(session["id"]))

  def test_get_resigns_only_when_totals_change(self):
    session = self.create()

    same = self.run_async(self.service.get(session["id"]))
    self.assertEqual(
        same["ap2"]["checkout_signature"], session["ap2"]["checkout_signature"]
    )

    self.magento.totals = {"grand_total": 18, "subtotal": 20}
    changed = self.run_async(self.service.get(session["id"]))
    self.assertEqual(changed["totals"]["grand_total"], 18)
    self.assertNotEqual(
        changed["ap2"]["checkout_signature"],
        session["ap2"]["checkout_signature"],
    )

  def test_unknown_session(self):
    with self.assertRaises(exceptions.ResourceNotFoundError):
      self.run_async(self.service.get("missing"))

  def test_unknown_sessions_leave_no_locks_behind(self):
    update = UpdateCheckoutSessionRequest()
    complete = CompleteCheckoutSessionRequest()

    async def scenario():
      for i in range(50):
        session_id = f"missing-{i}"
        for call in (
            self.service.get(session_id),
            self.service.update(session_id, update),
            self.service.complete(session_id, complete),
            self.service.cancel(session_id),
        ):
          with self.assertRaises(exceptions.ResourceNotFoundError):
            await call

    self.run_async(scenario())
    self.assertEqual(len(self.service.locks), 0)


if __name__ == "__main__":
  absltest.main()
