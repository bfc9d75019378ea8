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

"""Integration tests for the UCP gateway HTTP surface.

`FakeMagentoClient` records calls and serves canned carts, totals and orders.
`Ap2TestKeys` holds fresh key pairs for the gateway signer, the platform and
the payment processor, and signs mandates the way those parties would. The
checkout service tests reuse both.
"""

from typing import Any, Dict, List, Optional

from absl.testing import absltest
from fastapi.testclient import TestClient

from ucp_gateway.ap2 import algorithms
from ucp_gateway.ap2 import codec
from ucp_gateway.ap2.clock import system_clock
from ucp_gateway.ap2.config import Ap2Config
from ucp_gateway.ap2.service import Ap2Service
from ucp_gateway.ap2.signer import sign_mandate
from ucp_gateway.config import GatewayConfig
from ucp_gateway.enums import SignatureAlgorithm
from ucp_gateway.exceptions import UpstreamError
from ucp_gateway.keygen import generate_key_pair
from ucp_gateway.server import create_app
from ucp_gateway.services.checkout_service import CheckoutService
from ucp_gateway.session_store import InMemorySessionRepository

API_KEY = "test-key"
HEADERS = {"x-api-key": API_KEY}

SHIPPING_METHODS = [{
    "carrier_code": "flatrate",
    "method_code": "flatrate",
    "carrier_title": "Flat Rate",
    "amount": 5,
}]


class FakeMagentoClient:
  """In-memory stand-in for `MagentoClient`."""

  def __init__(self, payment_error: Optional[UpstreamError] = None):
    self.calls: List[tuple] = []
    self.items: List[tuple] = []
    self.totals: Dict[str, Any] = {"grand_total": 20, "subtotal": 20}
    self.payment_error = payment_error
    self.next_order_id = 100001

  async def create_guest_cart(self) -> str:
    self.calls.append(("create_guest_cart",))
    return "cart-1"

  async def add_item(self, cart_id: str, sku: str, quantity: int) -> Any:
    self.calls.append(("add_item", cart_id, sku, quantity))
    self.items.append((sku, quantity))
    return {"sku": sku, "qty": quantity}

  async def get_totals(self, cart_id: str) -> Dict[str, Any]:
    self.calls.append(("get_totals", cart_id))
    return dict(self.totals)

  async def estimate_shipping_methods(
      self, cart_id: str, address: Dict[str, Any]
  ) -> List[Dict[str, Any]]:
    self.calls.append(("estimate_shipping_methods", cart_id, address))
    return list(SHIPPING_METHODS)

  async def set_shipping_information(
      self,
      cart_id: str,
      address: Dict[str, Any],
      carrier_code: str,
      method_code: str,
  ) -> Dict[str, Any]:
    self.calls.append(
        ("set_shipping_information", cart_id, carrier_code, method_code)
    )
    self.totals = {**self.totals, "shipping_amount": 5, "grand_total": 25}
    return {"totals": dict(self.totals)}

  async def place_order(
      self,
      cart_id: str,
      payment_method_code: str,
      email: str,
      billing_address: Dict[str, Any],
  ) -> str:
    self.calls.append(("place_order", cart_id, payment_method_code, email))
    if self.payment_error is not None:
      raise self.payment_error
    order_id = str(self.next_order_id)
    self.next_order_id += 1
    return order_id

  async def ping(self) -> Any:
    self.calls.append(("ping",))
    return [{"code": "default"}]

  async def search_products(
      self, query: str, limit: int = 5
  ) -> List[Dict[str, str]]:
    self.calls.append(("search_products", query, limit))
    return [{"sku": "SKU-1", "name": "Blue Shirt"}][:limit]

  def count(self, name: str) -> int:
    return sum(1 for call in self.calls if call[0] == name)


def _pem_pair(alg: SignatureAlgorithm):
  private_pem, public_pem = generate_key_pair(alg)
  return private_pem.decode("ascii"), public_pem.decode("ascii")


class Ap2TestKeys:
  """Key pairs for the three AP2 parties."""

  def __init__(self, alg: SignatureAlgorithm = SignatureAlgorithm.RS256):
    self.alg = alg
    self.signing_private, self.signing_public = _pem_pair(alg)
    self.platform_private, self.platform_public = _pem_pair(alg)
    self.payment_private, self.payment_public = _pem_pair(alg)

  def config(self, **overrides) -> Ap2Config:
    fields = {
        "enabled": True,
        "signing_alg": self.alg.value,
        "signing_private_key_pem": self.signing_private,
        "signing_public_key_pem": self.signing_public,
        "platform_public_key_pem": self.platform_public,
        "payment_public_key_pem": self.payment_public,
    }
    fields.update(overrides)
    return Ap2Config(**fields)

  def checkout_mandate(
      self, checkout_signature: str, now: int, **overrides
  ) -> str:
    """Countersigns the claims of a gateway-issued checkout signature."""
    issued = codec.decode_mandate(checkout_signature).payload
    claims = {
        "checkout_hash": issued["checkout_hash"],
        "session_id": issued["session_id"],
        "nonce": issued["nonce"],
        "iat": now,
        "exp": now + 300,
    }
    claims.update(overrides)
    key = algorithms.load_private_key(self.platform_private)
    return sign_mandate(claims, key, self.alg)

  def payment_mandate(self, now: int, **claims) -> str:
    payload = {"iat": now, "exp": now + 300, **claims}
    key = algorithms.load_private_key(self.payment_private)
    return sign_mandate(payload, key, self.alg)


ADDRESS = {
    "firstname": "Ada",
    "lastname": "Lovelace",
    "street": ["1 Main St"],
    "city": "London",
    "postcode": "N1 1AA",
    "country_id": "GB",
    "telephone": "0123456789",
}


class IntegrationTest(absltest.TestCase):
  """Exercises the REST endpoints against a fake Magento backend."""

  @classmethod
  def setUpClass(cls):
    super().setUpClass()
    cls.keys = Ap2TestKeys()

  def setUp(self):
    super().setUp()
    self.magento = FakeMagentoClient()
    self.gateway_config = GatewayConfig(
        base_url="https://gateway.example.com",
        magento_base_url="https://shop.example.com",
        magento_store_code="default",
        magento_admin_token="token",
        payment_method_code="checkmo",
        api_key=API_KEY,
        expose_upstream_errors=True,
    )
    self.checkout_service = CheckoutService(
        self.magento,
        Ap2Service(self.keys.config()),
        InMemorySessionRepository(),
        self.gateway_config,
    )
    self.app = create_app(
        self.gateway_config, self.checkout_service, self.magento
    )
    self.client = TestClient(self.app)

  def create_session(self):
    response = self.client.post(
        "/checkout-sessions",
        json={
            "line_items": [{"sku": "SKU-1", "quantity": 1}],
            "buyer": {"email": "ada@example.com"},
        },
        headers=HEADERS,
    )
    self.assertEqual(response.status_code, 201, response.text)
    return response.json()

  def make_ready(self, session_id):
    response = self.client.put(
        f"/checkout-sessions/{session_id}",
        json={
            "shipping_address": ADDRESS,
            "shipping_method": {
                "carrier_code": "flatrate",
                "method_code": "flatrate",
            },
        },
        headers=HEADERS,
    )
    self.assertEqual(response.status_code, 200, response.text)
    return response.json()

  def mandates(self, session):
    now = system_clock()
    return {
        "checkout_mandate": self.keys.checkout_mandate(
            session["ap2"]["checkout_signature"], now
        ),
        "payment_mandate": self.keys.payment_mandate(now),
    }

  def test_end_to_end_checkout(self):
    with self.client:
      session = self.create_session()
      self.assertEqual(session["status"], "incomplete")

      ready = self.make_ready(session["id"])
      self.assertEqual(ready["status"], "ready_for_complete")
      self.assertTrue(ready["ap2"]["checkout_signature"])

      fetched = self.client.get(
          f"/checkout-sessions/{session['id']}", headers=HEADERS
      ).json()
      self.assertEqual(
          fetched["ap2"]["checkout_signature"],
          ready["ap2"]["checkout_signature"],
      )

      body = self.mandates(ready)
      response = self.client.post(
          f"/checkout-sessions/{session['id']}/complete",
          json=body,
          headers=HEADERS,
      )
      self.assertEqual(response.status_code, 200, response.text)
      completed = response.json()
      self.assertEqual(completed["status"], "completed")
      self.assertEqual(completed["order"], {"id": "100001"})

      repeat = self.client.post(
          f"/checkout-sessions/{session['id']}/complete",
          json=body,
          headers=HEADERS,
      )
      self.assertEqual(repeat.status_code, 200)
      self.assertEqual(repeat.json()["order"], {"id": "100001"})
      self.assertEqual(self.magento.count("place_order"), 1)

  def test_forged_mandate_is_rejected(self):
    with self.client:
      ready = self.make_ready(self.create_session()["id"])
      body = self.mandates(ready)
      body["payment_mandate"] = body["checkout_mandate"]

      response = self.client.post(
          f"/checkout-sessions/{ready['id']}/complete",
          json=body,
          headers=HEADERS,
      )

      self.assertEqual(response.status_code, 400)
      self.assertEqual(response.json()["code"], "MANDATE_INVALID_SIGNATURE")
      self.assertEqual(self.magento.count("place_order"), 0)

  def test_missing_mandates(self):
    with self.client:
      ready = self.make_ready(self.create_session()["id"])
      response = self.client.post(
          f"/checkout-sessions/{ready['id']}/complete", headers=HEADERS
      )
      self.assertEqual(response.status_code, 400)
      self.assertEqual(response.json()["code"], "MANDATE_REQUIRED")

  def test_complete_incomplete_session(self):
    with self.client:
      session = self.create_session()
      response = self.client.post(
          f"/checkout-sessions/{session['id']}/complete",
          json=self.mandates(session),
          headers=HEADERS,
      )
      self.assertEqual(response.status_code, 409)
      self.assertEqual(response.json()["code"], "ILLEGAL_STATE_TRANSITION")

  def test_cancel_then_update(self):
    with self.client:
      session = self.create_session()
      response = self.client.post(
          f"/checkout-sessions/{session['id']}/cancel", headers=HEADERS
      )
      self.assertEqual(response.json()["status"], "canceled")

      response = self.client.put(
          f"/checkout-sessions/{session['id']}",
          json={"buyer": {"email": "bob@example.com"}},
          headers=HEADERS,
      )
      self.assertEqual(response.status_code, 409)
      self.assertEqual(response.json()["code"], "CHECKOUT_NOT_MODIFIABLE")

  def test_upstream_failure(self):
    self.magento.payment_error = UpstreamError(
        "Payment declined",
        upstream_status=400,
        upstream_body={"message": "Payment declined"},
    )
    with self.client:
      ready = self.make_ready(self.create_session()["id"])
      response = self.client.post(
          f"/checkout-sessions/{ready['id']}/complete",
          json=self.mandates(ready),
          headers=HEADERS,
      )
      self.assertEqual(response.status_code, 502)
      self.assertEqual(
          response.json(),
          {
              "detail": "Payment declined",
              "code": "UPSTREAM_ERROR",
              "upstream": {
                  "status": 400,
                  "body": {"message": "Payment declined"},
              },
          },
      )

      fetched = self.client.get(
          f"/checkout-sessions/{ready['id']}", headers=HEADERS
      ).json()
      self.assertEqual(fetched["status"], "requires_escalation")

  def test_unknown_session(self):
    response = self.client.get("/checkout-sessions/nope", headers=HEADERS)
    self.assertEqual(response.status_code, 404)
    self.assertEqual(response.json()["code"], "RESOURCE_NOT_FOUND")

  def test_invalid_request_body(self):
    response = self.client.post(
        "/checkout-sessions", json={"line_items": []}, headers=HEADERS
    )
    self.assertEqual(response.status_code, 422)

  def test_api_key_required(self):
    response = self.client.post(
        "/checkout-sessions",
        json={"line_items": [{"sku": "SKU-1", "quantity": 1}]},
    )
    self.assertEqual(response.status_code, 401)
    response = self.client.get(
        "/products/search",
        params={"query": "shirt"},
        headers={"x-api-key": "wrong"},
    )
    self.assertEqual(response.status_code, 401)
    self.assertEqual(self.magento.calls, [])

  def test_health(self):
    self.assertEqual(self.client.get("/health").json(), {"ok": True})
    self.assertEqual(self.client.get("/health/magento").status_code, 401)
    response = self.client.get("/health/magento", headers=HEADERS)
    self.assertEqual(response.json(), {"ok": True})
    self.assertEqual(self.magento.count("ping"), 1)

  def test_discovery_profile(self):
    profile = self.client.get("/.well-known/ucp").json()
    self.assertEqual(profile["protocol"], "UCP")
    self.assertEqual(
        profile["services"]["dev.ucp.shopping.rest.endpoint"],
        "https://gateway.example.com",
    )
    self.assertEqual(
        profile["capabilities"][0]["endpoints"]["complete"],
        "https://gateway.example.com/checkout-sessions/{id}/complete",
    )
    self.assertEqual(
        profile["extensions"]["ap2"],
        {"supported": True, "supported_vp_formats": ["sd-jwt"]},
    )

  def test_product_search_clamps_limit(self):
    response = self.client.get(
        "/products/search",
        params={"query": "shirt", "limit": 100},
        headers=HEADERS,
    )
    self.assertEqual(
        response.json(), {"items": [{"sku": "SKU-1", "name": "Blue Shirt"}]}
    )
    self.assertEqual(self.magento.calls[-1], ("search_products", "shirt", 20))

    response = self.client.get(
        "/products/search", params={"query": " "}, headers=HEADERS
    )
    self.assertEqual(response.json(), {"items": []})

  def test_continue_page(self):
    with self.client:
      session = self.create_session()
      response = self.client.get(f"/continue/{session['id']}")
      self.assertEqual(response.status_code, 200)
      self.assertIn("text/html", response.headers["content-type"])
      self.assertIn(session["id"], response.text)
      self.assertIn("<code>SKU-1</code>", response.text)
      self.assertIn('href="https://shop.example.com/checkout"', response.text)


if __name__ == "__main__":
  absltest.main()
