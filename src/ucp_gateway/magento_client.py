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

"""Async client for the Magento 2 guest-cart REST API.

This is the order-placement backend of the gateway: it creates carts, adds
items, reports totals, estimates and sets shipping, and places orders. Every
call is a network round trip the checkout service awaits before advancing
session state. Failures raise `UpstreamError`.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .exceptions import UpstreamError
from .models import Address

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0


def to_magento_address(
    address: Address, email: Optional[str] = None
) -> Dict[str, Any]:
  """Converts a UCP address into Magento's address format."""
  magento_address = address.model_dump(exclude_none=True)
  if email:
    magento_address["email"] = email
  magento_address["same_as_billing"] = 1
  magento_address["save_in_address_book"] = 0
  return magento_address


class MagentoClient:
  """Thin wrapper around the Magento REST API for one store view."""

  def __init__(
      self,
      base_url: str,
      store_code: str,
      admin_token: str,
      timeout: float = DEFAULT_TIMEOUT_SECONDS,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self._api_base = (
        f"{base_url.rstrip('/')}/rest/{quote(store_code, safe='')}/V1"
    )
    self._headers = {
        "Authorization": f"Bearer {admin_token}",
        "Content-Type": "application/json",
    }
    self._timeout = timeout
    self._transport = transport

  async def _request(
      self,
      method: str,
      path: str,
      json_body: Optional[Dict[str, Any]] = None,
      params: Optional[Dict[str, str]] = None,
  ) -> Any:
    url = f"{self._api_base}{path}"
    try:
      async with httpx.AsyncClient(
          headers=self._headers,
          timeout=self._timeout,
          transport=self._transport,
      ) as client:
        response = await client.request(
            method, url, json=json_body, params=params
        )
    except httpx.RequestError as e:
      logger.error("Magento request %s %s failed: %s", method, path, e)
      raise UpstreamError(f"Magento request failed: {e}") from e

    if response.is_error:
      body = None
      try:
        body = response.json()
      except ValueError:
        pass
      message = "Magento request failed"
      if isinstance(body, dict) and body.get("message"):
        body.pop("trace", None)
        message = str(body["message"])
      logger.error(
          "Magento request %s %s returned %d: %s",
          method,
          path,
          response.status_code,
          message,
      )
      raise UpstreamError(
          message,
          upstream_status=response.status_code,
          upstream_body=body if isinstance(body, dict) else None,
      )
    try:
      return response.json()
    except ValueError as e:
      logger.error(
          "Magento request %s %s returned a non-JSON body", method, path
      )
      raise UpstreamError(
          "Magento returned a non-JSON response",
          upstream_status=response.status_code,
      ) from e

  @staticmethod
  def _cart_path(cart_id: str) -> str:
    return f"/guest-carts/{quote(cart_id, safe='')}"

  async def create_guest_cart(self) -> str:
    """Creates a guest cart and returns its cart id."""
    return str(await self._request("POST", "/guest-carts"))

  async def add_item(self, cart_id: str, sku: str, quantity: int) -> Any:
    payload = {"cartItem": {"quote_id": cart_id, "sku": sku, "qty": quantity}}
    return await self._request(
        "POST", f"{self._cart_path(cart_id)}/items", json_body=payload
    )

  async def get_totals(self, cart_id: str) -> Dict[str, Any]:
    return await self._request("GET", f"{self._cart_path(cart_id)}/totals")

  async def estimate_shipping_methods(
      self, cart_id: str, address: Dict[str, Any]
  ) -> List[Dict[str, Any]]:
    return await self._request(
        "POST",
        f"{self._cart_path(cart_id)}/estimate-shipping-methods",
        json_body={"address": address},
    )

  async def set_shipping_information(
      self,
      cart_id: str,
      address: Dict[str, Any],
      carrier_code: str,
      method_code: str,
  ) -> Dict[str, Any]:
    """Persists shipping address and method, returning Magento's response."""
    payload = {
        "addressInformation": {
            "shipping_address": address,
            "shipping_method_code": method_code,
            "shipping_carrier_code": carrier_code,
        }
    }
    return await self._request(
        "POST",
        f"{self._cart_path(cart_id)}/shipping-information",
        json_body=payload,
    )

  async def place_order(
      self,
      cart_id: str,
      payment_method_code: str,
      email: str,
      billing_address: Dict[str, Any],
  ) -> str:
    """Places the order for a guest cart and returns the order id.

    Many Magento setups require email and billing address even for offline
    payment methods such as checkmo.
    """
    payload = {
        "email": email,
        "paymentMethod": {"method": payment_method_code},
        "billing_address": billing_address,
    }
    order_id = await self._request(
        "POST",
        f"{self._cart_path(cart_id)}/payment-information",
        json_body=payload,
    )
    return str(order_id)

  async def ping(self) -> Any:
    return await self._request("GET", "/store/storeViews")

  async def search_products(
      self, query: str, limit: int = 5
  ) -> List[Dict[str, str]]:
    """Searches catalog products by name or SKU."""
    q = query.strip()
    if not q:
      return []
    params = {
        "searchCriteria[pageSize]": str(limit),
        "searchCriteria[currentPage]": "1",
        "searchCriteria[filter_groups][0][filters][0][field]": "name",
        "searchCriteria[filter_groups][0][filters][0][condition_type]": "like",
        "searchCriteria[filter_groups][0][filters][0][value]": f"%{q}%",
        "searchCriteria[filter_groups][1][filters][0][field]": "sku",
        "searchCriteria[filter_groups][1][filters][0][condition_type]": "like",
        "searchCriteria[filter_groups][1][filters][0][value]": f"%{q}%",
    }
    data = await self._request("GET", "/products", params=params)
    items = data.get("items") if isinstance(data, dict) else None
    results = []
    for item in items or []:
      if item.get("sku") and item.get("name"):
        results.append({"sku": item["sku"], "name": item["name"]})
    return results[:limit]
