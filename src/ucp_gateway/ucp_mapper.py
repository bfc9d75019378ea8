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

"""Maps session records to the UCP REST response shape."""

from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from .enums import MessageSeverity
from .enums import TERMINAL_STATUSES
from .models import CheckoutSessionRecord
from .models import Message


def message(severity: MessageSeverity, code: str, text: str) -> Message:
  return Message(severity=severity, code=code, message=text)


def continue_url(base_url: str, session_id: str) -> str:
  """Builds the buyer hand-off URL for a session."""
  return f"{base_url.rstrip('/')}/continue/{quote(session_id, safe='')}"


def to_ucp_session(
    record: CheckoutSessionRecord,
    base_url: str,
    totals: Optional[Dict[str, Any]] = None,
    shipping_methods: Optional[List[Dict[str, Any]]] = None,
    messages: Sequence[Message] = (),
    default_vp_formats: Sequence[str] = (),
    expose_debug: bool = False,
) -> Dict[str, Any]:
  """Renders a session record as a UCP checkout session.

  Fields without a value are omitted. `continue_url` is present only while
  the session is not terminal; `order` only once an order was placed.
  """
  session: Dict[str, Any] = {
      "id": record.id,
      "status": record.status.value,
      "continue_url": (
          None
          if record.status in TERMINAL_STATUSES
          else continue_url(base_url, record.id)
      ),
      "buyer": {"email": record.buyer_email} if record.buyer_email else None,
      "line_items": (
          [li.model_dump(mode="json") for li in record.items]
          if record.items
          else None
      ),
      "totals": totals if totals is not None else record.last_totals,
      "shipping_methods": (
          shipping_methods
          if shipping_methods is not None
          else record.last_shipping_methods
      ),
      "messages": [m.model_dump(mode="json") for m in messages],
      "order": {"id": record.order_id} if record.order_id else None,
  }
  if record.ap2_activated:
    session["ap2"] = {
        "activated": True,
        "checkout_signature": record.checkout_signature,
        "supported_vp_formats": (
            record.supported_vp_formats or list(default_vp_formats)
        ),
    }
  if expose_debug:
    session["_debug"] = {
        "magento_cart_id": record.cart_id,
        "updated_at": record.updated_at.isoformat(),
    }
  return {k: v for k, v in session.items() if v is not None}
