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

"""Health check routes."""

from typing import Any

from fastapi import APIRouter
from fastapi import Depends

from .. import dependencies
from ..magento_client import MagentoClient

router = APIRouter(prefix="/health")


@router.get("")
async def health() -> dict[str, Any]:
  return {"ok": True}


@router.get(
    "/magento", dependencies=[Depends(dependencies.require_api_key)]
)
async def magento_health(
    magento: MagentoClient = Depends(dependencies.get_magento_client),
) -> dict[str, Any]:
  """Checks connectivity to Magento; failures surface as 502."""
  await magento.ping()
  return {"ok": True}
