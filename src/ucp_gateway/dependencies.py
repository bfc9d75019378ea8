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

"""FastAPI dependencies for the UCP gateway.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Shared-secret API key validation for checkout and product routes.
- Providers for the services created at startup and stored on `app.state`.
"""

import secrets

from fastapi import HTTPException
from fastapi import Request

from .config import GatewayConfig
from .magento_client import MagentoClient
from .services.checkout_service import CheckoutService


def get_gateway_config(request: Request) -> GatewayConfig:
  """Dependency provider for the gateway configuration."""
  return request.app.state.gateway_config


def get_checkout_service(request: Request) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return request.app.state.checkout_service


def get_magento_client(request: Request) -> MagentoClient:
  """Dependency provider for the Magento client."""
  return request.app.state.magento


async def require_api_key(request: Request) -> None:
  """Rejects requests without the configured shared-secret header."""
  gateway_config: GatewayConfig = request.app.state.gateway_config
  if not gateway_config.api_key:
    return
  supplied = request.headers.get(gateway_config.api_key_header)
  if not supplied or not secrets.compare_digest(
      supplied.encode("utf-8"), gateway_config.api_key.encode("utf-8")
  ):
    raise HTTPException(status_code=401, detail="Unauthorized")
