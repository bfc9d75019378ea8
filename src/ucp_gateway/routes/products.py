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

"""Product search routes used to look up SKUs for line items."""

from typing import Any

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Query

from .. import dependencies
from ..magento_client import MagentoClient

router = APIRouter(
    prefix="/products",
    dependencies=[Depends(dependencies.require_api_key)],
)

MIN_LIMIT = 1
MAX_LIMIT = 20


@router.get("/search", operation_id="search_products")
async def search_products(
    query: str = Query(""),
    limit: int = Query(5),
    magento: MagentoClient = Depends(dependencies.get_magento_client),
) -> dict[str, Any]:
  """Searches catalog products by name or SKU."""
  if not query.strip():
    return {"items": []}
  limit = max(MIN_LIMIT, min(MAX_LIMIT, limit))
  return {"items": await magento.search_products(query, limit)}
