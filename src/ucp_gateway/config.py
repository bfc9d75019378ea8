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

"""Shared configuration and startup logic for the UCP gateway.

Options are absl flags. They are read once at startup into immutable config
objects (`GatewayConfig`, `ap2.config.Ap2Config`) that are passed explicitly
to the services; nothing reads flags after startup.
"""

import contextlib
from typing import Optional, Tuple

from absl import flags
from fastapi import FastAPI
from pydantic import BaseModel
from pydantic import ConfigDict

from . import db
from .ap2.config import Ap2Config
from .ap2.config import DEFAULT_CLOCK_SKEW_SECONDS
from .ap2.config import DEFAULT_MANDATE_MAX_AGE_SECONDS
from .ap2.config import DEFAULT_VP_FORMATS
from .exceptions import ConfigurationError

FLAGS = flags.FLAGS

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("host", "127.0.0.1", "Host to bind the server to")
  flags.DEFINE_integer("port", 3000, "Port to run the server on")
  flags.DEFINE_string("base_url", None, "Public base URL of this gateway")
  flags.DEFINE_string("magento_base_url", None, "Magento base URL")
  flags.DEFINE_string("magento_store_code", None, "Magento store view code")
  flags.DEFINE_string("magento_admin_token", None, "Magento admin API token")
  flags.DEFINE_string(
      "magento_checkout_url", None, "Merchant checkout URL for buyer hand-off"
  )
  flags.DEFINE_string(
      "payment_method_code",
      None,
      "Magento payment method used to place orders; without it completion"
      " requires escalation",
  )
  flags.DEFINE_string("api_key", None, "Shared secret required by clients")
  flags.DEFINE_string("api_key_header", "x-api-key", "Header carrying the key")
  flags.DEFINE_bool("expose_debug", False, "Include _debug in responses")
  flags.DEFINE_bool(
      "expose_upstream_errors", False, "Include Magento error bodies"
  )
  flags.DEFINE_string(
      "sessions_db_path", None, "SQLite path for sessions (in-memory if unset)"
  )

  flags.DEFINE_bool("ap2_enabled", False, "Activate AP2 mandate protocol")
  flags.DEFINE_enum(
      "ap2_signing_alg", "RS256", ["RS256", "ES256"], "Checkout signing alg"
  )
  flags.DEFINE_string(
      "ap2_signing_private_key_file", None, "PEM private key for signing"
  )
  flags.DEFINE_string(
      "ap2_signing_public_key_file", None, "PEM public key for signing"
  )
  flags.DEFINE_string(
      "ap2_platform_public_key_file", None, "PEM key for checkout mandates"
  )
  flags.DEFINE_string(
      "ap2_platform_signing_alg", None, "Checkout mandate alg override"
  )
  flags.DEFINE_string(
      "ap2_payment_public_key_file", None, "PEM key for payment mandates"
  )
  flags.DEFINE_string(
      "ap2_payment_signing_alg", None, "Payment mandate alg override"
  )
  flags.DEFINE_list(
      "ap2_supported_vp_formats",
      list(DEFAULT_VP_FORMATS),
      "Verifiable presentation formats advertised",
  )
  flags.DEFINE_string("ap2_issuer", None, "Required mandate issuer")
  flags.DEFINE_string("ap2_audience", None, "Required mandate audience")
  flags.DEFINE_integer(
      "ap2_clock_skew_sec", DEFAULT_CLOCK_SKEW_SECONDS, "Clock skew tolerance"
  )
  flags.DEFINE_integer(
      "ap2_mandate_max_age_sec",
      DEFAULT_MANDATE_MAX_AGE_SECONDS,
      "Lifetime of issued checkout mandates",
  )
except flags.DuplicateFlagError:
  pass


class GatewayConfig(BaseModel):
  """Non-AP2 gateway settings."""

  model_config = ConfigDict(frozen=True)

  base_url: str
  magento_base_url: str
  magento_store_code: str
  magento_admin_token: str
  magento_checkout_url: Optional[str] = None
  payment_method_code: Optional[str] = None
  api_key: Optional[str] = None
  api_key_header: str = "x-api-key"
  expose_debug: bool = False
  expose_upstream_errors: bool = False

  @property
  def checkout_url(self) -> str:
    return (
        self.magento_checkout_url
        or f"{self.magento_base_url.rstrip('/')}/checkout"
    )


def _read_pem(path: Optional[str]) -> Optional[str]:
  if not path:
    return None
  try:
    with open(path, "r", encoding="utf-8") as f:
      return f.read()
  except OSError as e:
    raise ConfigurationError(f"Cannot read key file {path}: {e}") from e


def gateway_config_from_flags() -> GatewayConfig:
  """Builds the gateway config from parsed flags.

  Raises:
    ConfigurationError: If a required option is missing.
  """
  required: Tuple[str, ...] = (
      "base_url",
      "magento_base_url",
      "magento_store_code",
      "magento_admin_token",
      "api_key",
  )
  missing = [name for name in required if not getattr(FLAGS, name)]
  if missing:
    raise ConfigurationError(
        "Missing required flags: " + ", ".join(f"--{m}" for m in missing)
    )
  return GatewayConfig(
      base_url=FLAGS.base_url,
      magento_base_url=FLAGS.magento_base_url,
      magento_store_code=FLAGS.magento_store_code,
      magento_admin_token=FLAGS.magento_admin_token,
      magento_checkout_url=FLAGS.magento_checkout_url,
      payment_method_code=FLAGS.payment_method_code,
      api_key=FLAGS.api_key,
      api_key_header=FLAGS.api_key_header,
      expose_debug=FLAGS.expose_debug,
      expose_upstream_errors=FLAGS.expose_upstream_errors,
  )


def ap2_config_from_flags() -> Ap2Config:
  """Builds and validates the AP2 config from parsed flags.

  Raises:
    ConfigurationError: If AP2 is enabled without usable keys/algorithms.
  """
  ap2_config = Ap2Config(
      enabled=FLAGS.ap2_enabled,
      signing_alg=FLAGS.ap2_signing_alg,
      signing_private_key_pem=_read_pem(FLAGS.ap2_signing_private_key_file),
      signing_public_key_pem=_read_pem(FLAGS.ap2_signing_public_key_file),
      platform_public_key_pem=_read_pem(FLAGS.ap2_platform_public_key_file),
      platform_signing_alg=FLAGS.ap2_platform_signing_alg,
      payment_public_key_pem=_read_pem(FLAGS.ap2_payment_public_key_file),
      payment_signing_alg=FLAGS.ap2_payment_signing_alg,
      supported_vp_formats=tuple(FLAGS.ap2_supported_vp_formats)
      or DEFAULT_VP_FORMATS,
      issuer=FLAGS.ap2_issuer,
      audience=FLAGS.ap2_audience,
      clock_skew_seconds=FLAGS.ap2_clock_skew_sec,
      mandate_max_age_seconds=FLAGS.ap2_mandate_max_age_sec,
  )
  ap2_config.validate_for_startup()
  return ap2_config


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Opens the session database when the app was configured with one."""
  db_path = getattr(app.state, "sessions_db_path", None)
  if db_path:
    await db.manager.init_db(db_path)
  yield
  await db.manager.close()
