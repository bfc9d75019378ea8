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

"""Wire format of AP2 mandates.

A mandate is `base64url(header).base64url(payload).base64url(signature)`,
where header and payload are compact JSON objects and base64url is the
URL-safe alphabet with `=` padding stripped. Verification always runs over the
first two segments exactly as received, never over re-serialized JSON.
"""

import base64
import binascii
import dataclasses
import json
import math
from typing import Any, Dict

from ..exceptions import MalformedMandateError

JWT_TYPE = "JWT"


def b64url_encode(data: bytes) -> str:
  """Encode bytes to base64url without padding."""
  return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
  """Decode a base64url string, restoring the stripped padding."""
  padded = data + "=" * (-len(data) % 4)
  try:
    return base64.b64decode(
        padded.encode("ascii"), altchars=b"-_", validate=True
    )
  except (binascii.Error, UnicodeEncodeError) as e:
    raise MalformedMandateError(f"Invalid base64url segment: {e}") from e


def _dump_json(obj: Dict[str, Any]) -> bytes:
  return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode(
      "utf-8"
  )


def encode_signing_input(
    header: Dict[str, Any], payload: Dict[str, Any]
) -> str:
  """Returns `base64url(header).base64url(payload)`."""
  header_b64 = b64url_encode(_dump_json(header))
  payload_b64 = b64url_encode(_dump_json(payload))
  return f"{header_b64}.{payload_b64}"


def attach_signature(signing_input: str, signature: bytes) -> str:
  return f"{signing_input}.{b64url_encode(signature)}"


@dataclasses.dataclass(frozen=True)
class DecodedMandate:
  """A mandate split into its parts.

  Attributes:
    header: The decoded JOSE header.
    payload: The decoded claim set.
    signing_input: The first two segments, byte-for-byte as received.
    signature: The raw signature bytes.
  """

  header: Dict[str, Any]
  payload: Dict[str, Any]
  signing_input: bytes
  signature: bytes

  @property
  def algorithm(self) -> str:
    return str(self.header.get("alg") or "").upper()


def _reject_constant(constant: str) -> float:
  raise MalformedMandateError(f"Mandate JSON holds {constant}")


def _parse_finite_float(text: str) -> float:
  value = float(text)
  if not math.isfinite(value):
    raise MalformedMandateError(f"Mandate JSON number {text} overflows")
  return value


def _decode_json_segment(segment: str, name: str) -> Dict[str, Any]:
  raw = b64url_decode(segment)
  try:
    value = json.loads(
        raw.decode("utf-8"),
        parse_constant=_reject_constant,
        parse_float=_parse_finite_float,
    )
  except (UnicodeDecodeError, json.JSONDecodeError) as e:
    raise MalformedMandateError(f"Mandate {name} is not valid JSON") from e
  if not isinstance(value, dict):
    raise MalformedMandateError(f"Mandate {name} must be a JSON object")
  return value


def decode_mandate(mandate: Any) -> DecodedMandate:
  """Splits and decodes a mandate.

  Args:
    mandate: The compact mandate string.

  Returns:
    The decoded mandate.

  Raises:
    MalformedMandateError: If the input is not a string of exactly three
      base64url segments with JSON object header and payload.
  """
  if not isinstance(mandate, str):
    raise MalformedMandateError("Mandate must be a compact JWT string")
  parts = mandate.split(".")
  if len(parts) != 3:
    raise MalformedMandateError(
        f"Mandate must have 3 segments, got {len(parts)}"
    )
  header_b64, payload_b64, signature_b64 = parts
  header = _decode_json_segment(header_b64, "header")
  payload = _decode_json_segment(payload_b64, "payload")
  signature = b64url_decode(signature_b64)
  return DecodedMandate(
      header=header,
      payload=payload,
      signing_input=f"{header_b64}.{payload_b64}".encode("ascii"),
      signature=signature,
  )
