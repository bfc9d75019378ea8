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

"""AP2 key and mandate tooling for local testing.

Usage:
  ucp-gateway-keygen generate --out_dir=.tmp [--key_alg=ES256]
  ucp-gateway-keygen mint --private_key_file=.tmp/ap2-platform-private.pem \
      --payload_file=checkout.json [--mandate_alg=RS256] [--ttl_sec=600]

`generate` writes one key pair per AP2 role (gateway signing, platform,
payment). `mint` signs a JSON claim set and prints the compact mandate; `iat`
and `exp` are filled in when the payload does not carry them.
"""

import json
import logging
import os
import sys
from typing import Any, Dict, List, Sequence, Tuple

from absl import app as absl_app
from absl import flags
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import rsa

from .ap2 import algorithms
from .ap2.clock import system_clock
from .ap2.signer import sign_mandate
from .enums import SignatureAlgorithm

FLAGS = flags.FLAGS

try:
  flags.DEFINE_string("out_dir", ".tmp", "Directory for generated keys")
  flags.DEFINE_enum(
      "key_alg", "RS256", ["RS256", "ES256"], "Algorithm of generated keys"
  )
  flags.DEFINE_string("private_key_file", None, "PEM key to sign with")
  flags.DEFINE_string(
      "payload_file", None, "JSON claim set to sign ('-' for stdin)"
  )
  flags.DEFINE_enum(
      "mandate_alg", "RS256", ["RS256", "ES256"], "Algorithm of the mandate"
  )
  flags.DEFINE_integer("ttl_sec", 600, "Lifetime used when exp is absent")
except flags.DuplicateFlagError:
  pass

logger = logging.getLogger(__name__)

KEY_ROLES = ("ap2-signing", "ap2-platform", "ap2-payment")
RSA_KEY_SIZE = 2048


def generate_key_pair(alg: SignatureAlgorithm) -> Tuple[bytes, bytes]:
  """Returns a new (private PKCS#8 PEM, public SPKI PEM) pair for `alg`."""
  if alg == SignatureAlgorithm.ES256:
    private_key = ec.generate_private_key(ec.SECP256R1())
  else:
    private_key = rsa.generate_private_key(
        public_exponent=65537, key_size=RSA_KEY_SIZE
    )
  private_pem = private_key.private_bytes(
      encoding=serialization.Encoding.PEM,
      format=serialization.PrivateFormat.PKCS8,
      encryption_algorithm=serialization.NoEncryption(),
  )
  public_pem = private_key.public_key().public_bytes(
      encoding=serialization.Encoding.PEM,
      format=serialization.PublicFormat.SubjectPublicKeyInfo,
  )
  return private_pem, public_pem


def write_role_keys(out_dir: str, alg: SignatureAlgorithm) -> List[str]:
  """Writes `<role>-private.pem` and `<role>-public.pem` for every role."""
  os.makedirs(out_dir, exist_ok=True)
  written = []
  for role in KEY_ROLES:
    private_pem, public_pem = generate_key_pair(alg)
    for suffix, pem in (("private", private_pem), ("public", public_pem)):
      path = os.path.join(out_dir, f"{role}-{suffix}.pem")
      with open(path, "wb") as f:
        f.write(pem)
      written.append(path)
  return written


def mint_mandate(
    payload: Dict[str, Any],
    private_key_pem: str,
    alg: SignatureAlgorithm,
    now: int,
    ttl_seconds: int,
) -> str:
  """Signs `payload`, adding `iat` and `exp` when they are missing.

  Raises:
    ValueError: If the key cannot be loaded or does not match `alg`.
  """
  claims = dict(payload)
  claims.setdefault("iat", now)
  claims.setdefault("exp", claims["iat"] + ttl_seconds)
  key = algorithms.load_private_key(private_key_pem)
  algorithms.check_key_matches(alg, key)
  return sign_mandate(claims, key, alg)


def _read_payload(path: str) -> Dict[str, Any]:
  if path == "-":
    payload = json.load(sys.stdin)
  else:
    with open(path, "r", encoding="utf-8") as f:
      payload = json.load(f)
  if not isinstance(payload, dict):
    raise absl_app.UsageError("The mandate payload must be a JSON object")
  return payload


def main(argv: Sequence[str]) -> None:
  """Main entry point for the key tool."""
  logging.basicConfig(level=logging.INFO)
  if len(argv) != 2 or argv[1] not in ("generate", "mint"):
    raise absl_app.UsageError("Expected one command: generate | mint")

  if argv[1] == "generate":
    alg = SignatureAlgorithm(FLAGS.key_alg)
    for path in write_role_keys(FLAGS.out_dir, alg):
      logger.info("Wrote %s", path)
    return

  if not FLAGS.private_key_file or not FLAGS.payload_file:
    raise absl_app.UsageError(
        "mint requires --private_key_file and --payload_file"
    )
  with open(FLAGS.private_key_file, "r", encoding="utf-8") as f:
    private_key_pem = f.read()
  try:
    mandate = mint_mandate(
        _read_payload(FLAGS.payload_file),
        private_key_pem,
        SignatureAlgorithm(FLAGS.mandate_alg),
        system_clock(),
        FLAGS.ttl_sec,
    )
  except ValueError as e:
    logger.error("Cannot sign mandate: %s", e)
    sys.exit(1)
  print(mandate)


def run() -> None:
  absl_app.run(main)


if __name__ == "__main__":
  run()
