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

"""Canonical form and hashing of checkout state.

The canonical form is the JSON Canonicalization Scheme (RFC 8785): object
members sorted by the UTF-16 code units of their names, lists kept in order,
numbers in ECMAScript shortest form and no insignificant whitespace. It is
the form `JSON.stringify` produces over sorted keys, so any party holding the
session data can recompute the checkout hash independently.
"""

import hashlib
from typing import Dict, List, Optional, Union

from pydantic import BaseModel
import rfc8785

from ..models import CheckoutSessionRecord

JsonValue = Union[
    None, bool, int, float, str, List["JsonValue"], Dict[str, "JsonValue"]
]


def canonicalize(value: JsonValue) -> str:
  """Renders a JSON-like value as a deterministic string.

  Args:
    value: None, bool, int, float, str, a list/tuple of values, a mapping with
      string keys, or a pydantic model (dumped in JSON mode).

  Returns:
    The canonical string.

  Raises:
    ValueError: If the value holds NaN, an infinity, an integer outside the
      IEEE-754 safe range, or an unsupported type.
  """
  if isinstance(value, BaseModel):
    value = value.model_dump(mode="json")
  try:
    return rfc8785.dumps(value).decode("utf-8")
  except (rfc8785.CanonicalizationError, TypeError) as e:
    raise ValueError(f"Cannot canonicalize value: {e}") from e


def hash_checkout_state(state: JsonValue) -> str:
  """SHA-256 of the canonical form, as lowercase hex."""
  canonical = canonicalize(state)
  return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_checkout_state(
    record: CheckoutSessionRecord, nonce: Optional[str] = None
) -> Dict[str, JsonValue]:
  """Builds the snapshot of the fields that feed the checkout hash.

  Args:
    record: The session record.
    nonce: Overrides the record's nonce (used while the nonce is being
      assigned).

  Returns:
    The checkout state snapshot.
  """
  if nonce is None:
    nonce = record.checkout_nonce
  return {
      "session_id": record.id,
      "nonce": nonce,
      "id": record.id,
      "buyer": {"email": record.buyer_email} if record.buyer_email else None,
      "line_items": [li.model_dump(mode="json") for li in record.items],
      "shipping_address": (
          record.shipping_address.model_dump(mode="json", exclude_none=True)
          if record.shipping_address
          else None
      ),
      "shipping_method": (
          record.shipping_method.model_dump(mode="json", exclude_none=True)
          if record.shipping_method
          else None
      ),
      "totals": record.last_totals,
  }
