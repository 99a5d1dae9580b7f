"""
Authorize.Net Payments Router

Thin transport over payments_service: every operation returns a dict, and
structured errors are mapped back to their HTTP status here.
"""
from fastapi import APIRouter, Path, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from decimal import Decimal
from typing import Dict, Any, Optional

from app.models.payment import SubjectType, PayByCreditCardRequest, PaymentFormRequest
from app.services import payments_service
from app.core.exceptions import error_status_code

router = APIRouter()


def _respond(payload: Dict[str, Any], failure_status: int = 402) -> JSONResponse:
    """200 for results, the error's own status for structured errors"""
    if "error_type" in payload:
        return JSONResponse(status_code=error_status_code(payload), content=jsonable_encoder(payload))
    if payload.get("success") is False:
        return JSONResponse(status_code=failure_status, content=jsonable_encoder(payload))
    return JSONResponse(content=jsonable_encoder(payload))


# ============================================================================
# MERCHANT PUBLIC KEY
# ============================================================================

@router.get("/public-key/affiliate/{merchant_id}")
async def get_affiliate_public_key(merchant_id: int = Path(..., gt=0)):
    """
    Public client key for Accept.js, by merchant.

    Returns `{"error": "no credentials found"}` (404) unless exactly one
    credential row exists for the merchant.
    """
    payload = await payments_service.get_merchant_details(SubjectType.MERCHANT, merchant_id)
    return _respond(payload)


@router.get("/public-key/attendee/{registrant_id}")
async def get_attendee_public_key(registrant_id: int = Path(..., gt=0)):
    """Public client key for Accept.js, by the registrant's event merchant"""
    payload = await payments_service.get_merchant_details(SubjectType.REGISTRANT, registrant_id)
    return _respond(payload)


# ============================================================================
# CHARGES AND REFUNDS
# ============================================================================

@router.post("/pay")
async def pay_by_credit_card(data: PayByCreditCardRequest):
    """
    Charge an Accept.js opaque token (authorize + capture).

    **Returns:**
    - the reconciled transaction detail on success
    - the raw processor response (402) when no transaction was created
    """
    payload = await payments_service.pay_by_credit_card(data)
    if "error_type" not in payload and "transaction_id" not in payload:
        return JSONResponse(status_code=402, content=jsonable_encoder(payload))
    return _respond(payload)


@router.delete("/refund/{merchant_id}/{transaction_id}/{refund_amount}")
async def refund_transaction(
    merchant_id: int = Path(..., gt=0),
    transaction_id: str = Path(..., description="Raw id or 'prefix:rawId'"),
    refund_amount: Decimal = Path(..., gt=0),
    registrant_id: Optional[int] = Query(None, gt=0, description="Registrant the refund is recorded against")
):
    """
    Refund a settled transaction.

    A transaction still pending settlement returns 409 with
    `next_action: "void"` and no refund is submitted.
    """
    payload = await payments_service.refund_transaction(merchant_id, transaction_id, refund_amount, registrant_id)
    return _respond(payload)


@router.get("/transaction/{merchant_id}/{transaction_id}")
async def get_transaction(merchant_id: int = Path(..., gt=0), transaction_id: str = Path(...)):
    payload = await payments_service.get_transaction_details(merchant_id, transaction_id)
    return _respond(payload)


# ============================================================================
# MULTI-CHECKOUT AND HOSTED FORM
# ============================================================================

@router.get("/multi-checkout/{registrant_id}")
async def check_multi_checkout(registrant_id: int = Path(..., gt=0)):
    """Whether the registrant pays for a linked group of registrants"""
    return await payments_service.check_multi_checkout(registrant_id)


@router.post("/payment-form")
async def get_payment_form(data: PaymentFormRequest):
    """Hosted payment page token with the merchant's display options applied"""
    payload = await payments_service.get_payment_form(data)
    return _respond(payload)
