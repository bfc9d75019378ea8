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

"""Discovery routes for the UCP gateway."""

import json
import pathlib
from typing import Any

from fastapi import APIRouter
from fastapi import Depends

from .. import __version__
from .. import dependencies
from ..config import GatewayConfig
from ..services.checkout_service import CheckoutService

router = APIRouter()

PROFILE_TEMPLATE_PATH = pathlib.Path(__file__).parent / "discovery_profile.json"


@router.get("/.well-known/ucp", summary="Get Merchant Profile")
async def get_merchant_profile(
    gateway_config: GatewayConfig = Depends(dependencies.get_gateway_config),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Returns the merchant profile, endpoints and AP2 support."""
  with open(PROFILE_TEMPLATE_PATH, "r", encoding="utf-8") as f:
    template = f.read()

  profile_json = template.replace(
      "{{ENDPOINT}}", gateway_config.base_url.rstrip("/")
  ).replace("{{VERSION}}", __version__)
  profile = json.loads(profile_json)

  ap2 = checkout_service.ap2
  profile["extensions"] = {
      "ap2": {
          "supported": ap2.enabled,
          "supported_vp_formats": (
              list(ap2.config.supported_vp_formats) if ap2.enabled else []
          ),
      }
  }
  return profile
