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

"""RS256 and ES256 signing primitives.

RS256 is RSASSA-PKCS1-v1_5 with SHA-256. ES256 is ECDSA on P-256 with
SHA-256, with the signature encoded as the 64-byte `r || s` concatenation
used by JWS rather than DER.
"""

from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric import utils as asym_utils

from ..enums import SignatureAlgorithm

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]
PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey]

SUPPORTED_ALGORITHMS = frozenset(a.value for a in SignatureAlgorithm)

_ES256_COORDINATE_BYTES = 32


def normalize_algorithm(alg: str) -> SignatureAlgorithm:
  """Returns the algorithm for a (case-insensitive) name.

  Raises:
    ValueError: If the algorithm is not RS256 or ES256.
  """
  return SignatureAlgorithm(str(alg).upper())


def load_private_key(pem: Union[str, bytes]) -> PrivateKey:
  """Loads an unencrypted PEM private key.

  Raises:
    ValueError: If the PEM cannot be parsed or is not an RSA/EC key.
  """
  if isinstance(pem, str):
    pem = pem.encode("utf-8")
  try:
    key = serialization.load_pem_private_key(pem, password=None)
  except (TypeError, UnsupportedAlgorithm) as e:
    raise ValueError(f"Cannot load private key: {e}") from e
  if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
    raise ValueError(f"Unsupported private key type: {type(key).__name__}")
  return key


def load_public_key(pem: Union[str, bytes]) -> PublicKey:
  """Loads a PEM public key.

  Raises:
    ValueError: If the PEM cannot be parsed or is not an RSA/EC key.
  """
  if isinstance(pem, str):
    pem = pem.encode("utf-8")
  try:
    key = serialization.load_pem_public_key(pem)
  except UnsupportedAlgorithm as e:
    raise ValueError(f"Cannot load public key: {e}") from e
  if not isinstance(key, (rsa.RSAPublicKey, ec.EllipticCurvePublicKey)):
    raise ValueError(f"Unsupported public key type: {type(key).__name__}")
  return key


def check_key_matches(alg: SignatureAlgorithm, key) -> None:
  """Ensures a key can be used with the algorithm.

  Raises:
    ValueError: If the key type (or EC curve) does not fit the algorithm.
  """
  if alg == SignatureAlgorithm.RS256:
    if not isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
      raise ValueError("RS256 requires an RSA key")
  elif alg == SignatureAlgorithm.ES256:
    if not isinstance(
        key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)
    ) or not isinstance(key.curve, ec.SECP256R1):
      raise ValueError("ES256 requires an EC P-256 key")


def sign(
    alg: SignatureAlgorithm, private_key: PrivateKey, data: bytes
) -> bytes:
  """Signs data and returns the JWS signature bytes."""
  check_key_matches(alg, private_key)
  if alg == SignatureAlgorithm.RS256:
    return private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())
  der_signature = private_key.sign(data, ec.ECDSA(hashes.SHA256()))
  r, s = asym_utils.decode_dss_signature(der_signature)
  return r.to_bytes(_ES256_COORDINATE_BYTES, "big") + s.to_bytes(
      _ES256_COORDINATE_BYTES, "big"
  )


def verify(
    alg: SignatureAlgorithm,
    public_key: PublicKey,
    data: bytes,
    signature: bytes,
) -> bool:
  """Returns whether the signature over data is valid for the key."""
  try:
    check_key_matches(alg, public_key)
  except ValueError:
    return False
  try:
    if alg == SignatureAlgorithm.RS256:
      public_key.verify(signature, data, padding.PKCS1v15(), hashes.SHA256())
      return True
    if len(signature) != 2 * _ES256_COORDINATE_BYTES:
      return False
    r = int.from_bytes(signature[:_ES256_COORDINATE_BYTES], "big")
    s = int.from_bytes(signature[_ES256_COORDINATE_BYTES:], "big")
    public_key.verify(
        asym_utils.encode_dss_signature(r, s),
        data,
        ec.ECDSA(hashes.SHA256()),
    )
    return True
  except InvalidSignature:
    return False
