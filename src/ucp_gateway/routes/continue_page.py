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

"""Buyer hand-off page linked from `continue_url`.

Payment and any buyer-facing steps are finished in the merchant checkout; the
page shows the session id and items and links there.
"""

import html

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Path
from fastapi.responses import HTMLResponse

from .. import dependencies
from ..config import GatewayConfig
from ..services.checkout_service import CheckoutService

router = APIRouter()

_PAGE_TEMPLATE = """<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>Continue checkout</title>
  <style>
    body{{font-family: system-ui, sans-serif; margin: 2rem; line-height: 1.4;}}
    .card{{max-width: 820px; padding: 1.25rem 1.5rem; border: 1px solid #ddd;
      border-radius: 10px;}}
    code{{background:#f6f6f6; padding: 0.1rem 0.35rem; border-radius: 6px;}}
    a.button{{display:inline-block; padding: .7rem 1rem; border-radius: 10px;
      text-decoration:none; color:#fff; background:#222;}}
    .muted{{color:#555}}
  </style>
</head>
<body>
  <div class="card">
    <h1>Continue checkout</h1>
    <p class="muted">UCP session: <code>{session_id}</code></p>
    <p>Payment and any remaining steps are completed in the merchant
      checkout.</p>
    <h3>Items</h3>
    <ul>{items}</ul>
    {debug}
    <p><a class="button" href="{checkout_url}" rel="noopener">Open merchant
      checkout</a></p>
  </div>
</body>
</html>
"""


@router.get("/continue/{id}", response_class=HTMLResponse)
async def continue_checkout(
    session_id: str = Path(..., alias="id"),
    gateway_config: GatewayConfig = Depends(dependencies.get_gateway_config),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> HTMLResponse:
  """Renders the hand-off page for a session."""
  record = await checkout_service.get_record(session_id)
  items = "".join(
      f"<li><code>{html.escape(li.sku)}</code> &times; {li.quantity}</li>"
      for li in record.items
  )
  debug = ""
  if gateway_config.expose_debug:
    debug = (
        '<p class="muted">Magento cart id:'
        f" <code>{html.escape(record.cart_id)}</code></p>"
    )
  page = _PAGE_TEMPLATE.format(
      session_id=html.escape(record.id),
      items=items or '<li class="muted">No items</li>',
      debug=debug,
      checkout_url=html.escape(gateway_config.checkout_url),
  )
  return HTMLResponse(content=page)
