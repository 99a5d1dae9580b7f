from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Any, Dict
from datetime import datetime
from decimal import Decimal
from enum import Enum


class TransactionStatus(str, Enum):
    """Normalized transaction states"""
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    CAPTURED_PENDING_SETTLEMENT = "capturedPendingSettlement"
    DECLINED = "declined"
    ERROR = "error"
    REFUNDED = "refunded"
    VOIDED = "voided"


class SubjectType(str, Enum):
    """Who the credentials are resolved for"""
    MERCHANT = "merchant"
    REGISTRANT = "registrant"


class Credentials(BaseModel):
    """Processor credentials for one merchant"""
    merchant_id: int
    login: str
    transaction_key: str = Field(..., repr=False)
    sandbox: bool = False


class PayByCreditCardRequest(BaseModel):
    """Charge a client-tokenized card"""
    merchant_id: int = Field(..., gt=0, description="Affiliate ID")
    data_value: str = Field(..., min_length=1, description="Opaque payment token from the hosted fields")
    data_descriptor: str = Field(default="COMMON.ACCEPT.INAPP.PAYMENT", description="Opaque token descriptor")
    amount: Decimal = Field(..., gt=0, description="Amount to charge")
    order_ref: str = Field(..., min_length=1, description="Registrant/order reference")
    registrant_id: Optional[int] = Field(None, description="Registrant paying")
    multi_checkout: bool = Field(default=False, description="Payment covers several linked registrants")
    linked_registrant_ids: Optional[List[int]] = Field(None, description="Co-registrant IDs for multi-checkout")

    @field_validator("order_ref")
    @classmethod
    def strip_order_ref(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("order_ref cannot be blank")
        return v


class HostedPaymentOptions(BaseModel):
    """Per-merchant display toggles for the hosted payment page"""
    card_code: bool = True
    bank_account: bool = False
    bill_address_ask: bool = True
    bill_address_req: bool = True
    ship_address_ask: bool = True
    ship_address_req: bool = False
    email_address_ask: bool = False
    email_address_req: bool = False
    captcha: bool = False
    button_text: str = "Pay"
    show_order: bool = True
    show_receipt: bool = False
    iframe_communicator_url: str = ""

    @classmethod
    def from_gateway_fields(cls, fields: Dict[str, Any], iframe_communicator_url: str = "") -> "HostedPaymentOptions":
        """Build from the authnet document's auth_* display fields"""
        return cls(
            card_code=bool(fields.get("auth_cardCode", True)),
            bank_account=bool(fields.get("auth_bankAccount", False)),
            bill_address_ask=bool(fields.get("auth_billAddressAsk", True)),
            bill_address_req=bool(fields.get("auth_billAddressReq", True)),
            ship_address_ask=bool(fields.get("auth_shipAddressAsk", True)),
            ship_address_req=bool(fields.get("auth_shipAddressReq", False)),
            email_address_ask=bool(fields.get("auth_emailAddressAsk", False)),
            email_address_req=bool(fields.get("auth_emailAddressReq", False)),
            captcha=bool(fields.get("auth_captcha", False)),
            iframe_communicator_url=iframe_communicator_url,
        )


class PaymentFormRequest(BaseModel):
    """Request a hosted payment page token"""
    merchant_id: int = Field(..., gt=0)
    registrant_id: int = Field(..., gt=0)
    amount: Decimal = Field(..., gt=0)
    origin: Optional[str] = Field(None, description="Site origin hosting the iframe")


class TransactionDetail(BaseModel):
    """Normalized processor transaction detail"""
    transaction_id: str
    status: str = Field(..., description="Processor status string")
    normalized_status: TransactionStatus
    auth_amount: Optional[Decimal] = None
    settle_amount: Optional[Decimal] = None
    card_number: Optional[str] = Field(None, description="Masked card number")
    expiration_date: Optional[str] = Field(None, description="Masked expiry")
    card_type: Optional[str] = None
    invoice_number: Optional[str] = None
    response_code: Optional[int] = None
    submitted_at: Optional[str] = None
    linked_registrant_ids: List[int] = []

    @property
    def amount(self) -> Optional[Decimal]:
        return self.settle_amount if self.settle_amount is not None else self.auth_amount

    @property
    def card_last_four(self) -> Optional[str]:
        if not self.card_number:
            return None
        digits = "".join(ch for ch in self.card_number if ch.isdigit())
        return digits[-4:] if digits else None


class MultiCheckoutStatus(BaseModel):
    multi_checkout: bool = False
    registrants: List[int] = []


class TransactionRecord(BaseModel):
    """One charge or refund attempt as stored in payment_transactions"""
    id: Optional[int] = None
    external_transaction_id: Optional[str] = None
    merchant_id: int
    registrant_id: Optional[int] = None
    amount: Decimal
    status: str
    ref_transaction_id: Optional[str] = None
    gateway: str = "authnet"
    linked_registrant_ids: List[int] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
