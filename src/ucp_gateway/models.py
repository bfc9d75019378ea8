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

"""Pydantic models for the UCP gateway.

Request models validate the REST payloads accepted by the checkout session
endpoints. `CheckoutSessionRecord` is the server-side session state owned by
the session store and mutated only by the checkout service.
"""

import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pydantic import Field

from .enums import CheckoutStatus
from .enums import MessageSeverity

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class LineItem(BaseModel):
  sku: str = Field(..., min_length=1)
  quantity: int = Field(..., gt=0)


class Buyer(BaseModel):
  email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)


class Address(BaseModel):
  """Shipping/billing address fields required by Magento."""

  firstname: str = Field(..., min_length=1)
  lastname: str = Field(..., min_length=1)
  street: List[str] = Field(..., min_length=1)
  city: str = Field(..., min_length=1)
  region: Optional[str] = None
  region_code: Optional[str] = None
  region_id: Optional[int] = Field(None, gt=0)
  postcode: str = Field(..., min_length=1)
  country_id: str = Field(..., min_length=2, max_length=2)
  telephone: str = Field(..., min_length=5)


class ShippingMethod(BaseModel):
  carrier_code: str = Field(..., min_length=1)
  method_code: str = Field(..., min_length=1)


class CreateCheckoutSessionRequest(BaseModel):
  line_items: List[LineItem] = Field(..., min_length=1)
  buyer: Optional[Buyer] = None


class UpdateCheckoutSessionRequest(BaseModel):
  buyer: Optional[Buyer] = None
  shipping_address: Optional[Address] = None
  shipping_method: Optional[ShippingMethod] = None


class CompleteCheckoutSessionRequest(BaseModel):
  """Completion payload; mandates are required once AP2 is active."""

  checkout_mandate: Optional[Union[str, Dict[str, Any]]] = None
  payment_mandate: Optional[Union[str, Dict[str, Any]]] = None


class Message(BaseModel):
  severity: MessageSeverity
  code: str
  message: str


class CheckoutSessionRecord(BaseModel):
  """Server-side state of one checkout session."""

  id: str
  cart_id: str
  created_at: datetime.datetime
  updated_at: datetime.datetime
  status: CheckoutStatus = CheckoutStatus.IN_PROGRESS

  buyer_email: Optional[str] = None
  shipping_address: Optional[Address] = None
  shipping_method: Optional[ShippingMethod] = None

  last_totals: Optional[Dict[str, Any]] = None
  last_shipping_methods: Optional[List[Dict[str, Any]]] = None

  items: List[LineItem] = Field(default_factory=list)

  ap2_activated: bool = False
  checkout_nonce: Optional[str] = None
  checkout_state_hash: Optional[str] = None
  checkout_signature: Optional[str] = None
  supported_vp_formats: Optional[List[str]] = None
  mandate_verified_at: Optional[datetime.datetime] = None

  order_id: Optional[str] = None
