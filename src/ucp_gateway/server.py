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

"""UCP checkout gateway server (Python/FastAPI)."""

import logging
import sys
from typing import Optional, Sequence

from absl import app as absl_app
from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
import uvicorn

from . import __version__
from . import config
from . import db
from .ap2.service import Ap2Service
from .exceptions import ConfigurationError
from .exceptions import UcpError
from .exceptions import UpstreamError
from .magento_client import MagentoClient
from .routes.checkout_sessions import router as checkout_sessions_router
from .routes.continue_page import router as continue_router
from .routes.discovery import router as discovery_router
from .routes.health import router as health_router
from .routes.products import router as products_router
from .services.checkout_service import CheckoutService
from .session_store import InMemorySessionRepository

logger = logging.getLogger(__name__)


async def ucp_exception_handler(request: Request, exc: UcpError):
  """Handles UCP-specific exceptions and converts them to JSON responses."""
  content = {"detail": exc.message, "code": exc.code}
  gateway_config = request.app.state.gateway_config
  if isinstance(exc, UpstreamError) and gateway_config.expose_upstream_errors:
    content["upstream"] = {
        "status": exc.upstream_status,
        "body": exc.upstream_body,
    }
  return JSONResponse(status_code=exc.status_code, content=content)


def create_app(
    gateway_config: config.GatewayConfig,
    checkout_service: CheckoutService,
    magento: MagentoClient,
    sessions_db_path: Optional[str] = None,
) -> FastAPI:
  """Creates the FastAPI app with all routes and shared services."""
  app = FastAPI(
      title="UCP Checkout Gateway",
      version=__version__,
      description="UCP checkout sessions on Magento with AP2 mandates",
      lifespan=config.lifespan,
  )
  app.state.gateway_config = gateway_config
  app.state.checkout_service = checkout_service
  app.state.magento = magento
  app.state.sessions_db_path = sessions_db_path

  app.add_exception_handler(UcpError, ucp_exception_handler)
  app.include_router(health_router)
  app.include_router(discovery_router)
  app.include_router(checkout_sessions_router)
  app.include_router(products_router)
  app.include_router(continue_router)
  return app


def build_app_from_flags() -> FastAPI:
  """Reads flags, validates AP2 configuration and wires the services.

  Raises:
    ConfigurationError: If required options are missing or invalid.
  """
  gateway_config = config.gateway_config_from_flags()
  ap2_service = Ap2Service(config.ap2_config_from_flags())
  magento = MagentoClient(
      gateway_config.magento_base_url,
      gateway_config.magento_store_code,
      gateway_config.magento_admin_token,
  )
  sessions_db_path = config.FLAGS.sessions_db_path
  if sessions_db_path:
    repository = db.SqlSessionRepository(db.manager)
  else:
    repository = InMemorySessionRepository()
  checkout_service = CheckoutService(
      magento, ap2_service, repository, gateway_config
  )
  if ap2_service.enabled:
    logger.info("AP2 mandate verification enabled")
  return create_app(
      gateway_config, checkout_service, magento, sessions_db_path
  )


def main(argv: Sequence[str]) -> None:
  """Main entry point for the UCP gateway."""
  del argv  # Unused.
  logging.basicConfig(level=logging.INFO)

  try:
    app = build_app_from_flags()
  except ConfigurationError as e:
    logger.error("Invalid configuration: %s", e.message)
    print("\nUsage:")
    print(config.FLAGS.main_module_help())
    sys.exit(1)

  logger.info(
      "UCP gateway listening on http://%s:%d",
      config.FLAGS.host,
      config.FLAGS.port,
  )
  uvicorn.run(app, host=config.FLAGS.host, port=config.FLAGS.port)


def run() -> None:
  absl_app.run(main)


if __name__ == "__main__":
  run()
