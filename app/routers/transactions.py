from fastapi import APIRouter
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.services import payments_service
from app.core.exceptions import error_status_code

router = APIRouter()


@router.get("/{gateway}/{transaction_id}")
async def find_transactions(gateway: str, transaction_id: str):
    """Recorded charge and refund attempts for a processor transaction id"""
    payload = await payments_service.find_transactions(gateway, transaction_id)
    if "error_type" in payload:
        return JSONResponse(status_code=error_status_code(payload), content=jsonable_encoder(payload))
    return payload
