"""
Gateway Configuration Router

Per-merchant gateway credentials and default gateway. Unknown gateway types
and field names are rejected with 400 by the API error handlers.
"""
from fastapi import APIRouter, Body, Path
from typing import Dict, Any, List, Optional

from app.models.gateway import GatewaySet, GatewayWriteResult, AvailableGateway
from app.services import gateway_config_service

router = APIRouter()


@router.get("/available/{vertical}", response_model=List[AvailableGateway])
async def get_available_gateways(vertical: str):
    """Gateway types the platform offers for a vertical, with blank defaults"""
    return await gateway_config_service.get_available_gateways(vertical)


@router.get("/{merchant_id}", response_model=GatewaySet)
async def get_gateways(merchant_id: int):
    """
    Gateways configured for a merchant.

    The merchant's relational row is created on first read when missing.
    """
    return await gateway_config_service.read_config(merchant_id)


@router.post("/{merchant_id}/reset", response_model=GatewayWriteResult)
async def reset_payment_processor(merchant_id: int):
    """Clear the merchant's default gateway"""
    return await gateway_config_service.reset_default(merchant_id)


@router.post("/{merchant_id}/{gateway_type}", response_model=GatewayWriteResult)
async def update_gateway(
    merchant_id: int,
    gateway_type: str = Path(..., description="authnet, stripe, paypalexpress, paypalpayflow, payzang, vantiv-worldpay"),
    fields: Optional[Dict[str, Any]] = Body(None)
):
    """
    Create or update one gateway.

    **Request Body:** type-specific fields, plus `isDefault` to make this
    the merchant's default gateway (or to clear it when false).
    """
    return await gateway_config_service.write_config(merchant_id, gateway_type, fields)


@router.delete("/{merchant_id}/{gateway_type}", response_model=GatewayWriteResult)
async def delete_gateway(merchant_id: int, gateway_type: str):
    """Remove a gateway; its secrets are cleared and its document tombstoned"""
    return await gateway_config_service.delete_config(merchant_id, gateway_type)
