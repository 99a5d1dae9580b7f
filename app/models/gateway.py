from pydantic import BaseModel, Field
from typing import Optional, List, Any, Dict
from datetime import datetime


class GatewayConfig(BaseModel):
    """Gateway configured for a merchant"""
    merchant_id: int
    type: str = Field(..., description="Gateway type key (authnet, stripe, ...)")
    name: str = Field(..., description="Display name")
    fields: Dict[str, Any] = Field(default_factory=dict, description="Type-specific fields")
    is_default: bool = False
    is_deleted: bool = False
    last_updated: Optional[datetime] = None
    synthesized: bool = Field(
        default=False,
        description="Built from the relational row because the document was missing"
    )


class GatewaySet(BaseModel):
    """Gateways configured for a merchant"""
    merchant_id: int
    gateways: List[GatewayConfig] = []
    enabled_gateways: List[str] = []
    default_gateway: Optional[str] = None


class AvailableGateway(BaseModel):
    """Gateway type offered by the platform, with blank defaults"""
    type: str
    name: str
    fields: Dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False


class GatewayWriteResult(BaseModel):
    success: bool = True
    merchant_id: int
    type: Optional[str] = None
    changed: bool = True
    is_default: Optional[bool] = None
