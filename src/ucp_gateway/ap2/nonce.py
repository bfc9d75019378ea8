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

"""Single-use checkout nonces."""

import secrets
from typing import Callable

from .codec import b64url_encode

NONCE_BYTES = 16


def generate_nonce(
    random_bytes: Callable[[int], bytes] = secrets.token_bytes,
) -> str:
  """Returns a URL-safe nonce built from 16 random bytes."""
  return b64url_encode(random_bytes(NONCE_BYTES))
