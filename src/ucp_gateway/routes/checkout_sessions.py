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

"""Checkout session routes for the UCP gateway."""

from typing import Any, Optional

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path

from .. import dependencies
from ..models import CompleteCheckoutSessionRequest
from ..models import CreateCheckoutSessionRequest
from ..models import UpdateCheckoutSessionRequest
from ..services.checkout_service import CheckoutService

router = APIRouter(
    prefix="/checkout-sessions",
    dependencies=[Depends(dependencies.require_api_key)],
)


@router.post(
    "",
    response_model=dict[str, Any],
    status_code=201,
    operation_id="create_checkout_session",
)
async def create_checkout_session(
    request: CreateCheckoutSessionRequest = Body(...),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Creates a Magento guest cart with the given items."""
  return await checkout_service.create(request)


@router.get(
    "/{id}",
    response_model=dict[str, Any],
    operation_id="get_checkout_session",
)
async def get_checkout_session(
    session_id: str = Path(..., alias="id"),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Returns the session with refreshed totals."""
  return await checkout_service.get(session_id)


@router.put(
    "/{id}",
    response_model=dict[str, Any],
    operation_id="update_checkout_session",
)
async def update_checkout_session(
    session_id: str = Path(..., alias="id"),
    request: UpdateCheckoutSessionRequest = Body(...),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Updates buyer email, shipping address and shipping method."""
  return await checkout_service.update(session_id, request)


@router.post(
    "/{id}/complete",
    response_model=dict[str, Any],
    operation_id="complete_checkout_session",
)
async def complete_checkout_session(
    session_id: str = Path(..., alias="id"),
    request: Optional[CompleteCheckoutSessionRequest] = Body(None),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Verifies AP2 mandates when active and places the order."""
  return await checkout_service.complete(
      session_id, request or CompleteCheckoutSessionRequest()
  )


@router.post(
    "/{id}/cancel",
    response_model=dict[str, Any],
    operation_id="cancel_checkout_session",
)
async def cancel_checkout_session(
    session_id: str = Path(..., alias="id"),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Marks the session as canceled."""
  return await checkout_service.cancel(session_id)
