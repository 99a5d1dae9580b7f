"""
Base Transaction Gateway Interface

Processor-facing operations for card payments. Implementations never raise
on a business decline: every call resolves to a ProcessorResult. Transport
failures, timeouts and unreadable responses raise ProcessorFault instead, so
callers can alert on those and simply display declines.

Nothing here retries. Retrying a capture can charge a card twice; a caller
that wants to retry a read does so itself.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from decimal import Decimal
from enum import Enum

from app.models.payment import Credentials, HostedPaymentOptions, TransactionDetail


class ProcessorOutcome(str, Enum):
    """How a processor call resolved"""
    SUCCESS = "success"
    DECLINED = "declined"
    VOID_REQUIRED = "void_required"


@dataclass
class MerchantDetails:
    """Public merchant data needed by the client-side hosted fields"""
    login: str
    public_client_key: str
    test_mode: bool
    sandbox: bool
    merchant_name: Optional[str] = None


@dataclass
class HostedPaymentPage:
    token: str
    response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProcessorResult:
    """Result of one processor operation"""
    outcome: ProcessorOutcome
    transaction_id: Optional[str] = None
    detail: Optional[TransactionDetail] = None
    response: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
    error_text: Optional[str] = None
    merchant: Optional[MerchantDetails] = None
    hosted_page: Optional[HostedPaymentPage] = None

    @property
    def success(self) -> bool:
        return self.outcome == ProcessorOutcome.SUCCESS


class TransactionGateway(ABC):
    """
    Abstract base class for card processors.

    State machine driven through these calls:

        INIT --authorize+capture--> SETTLED | DECLINED | FAULT
        SETTLED --refund, capturedPendingSettlement--> VOID_REQUIRED
        SETTLED --refund, otherwise--> REFUND_SUBMITTED --> REFUNDED | FAULT
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier (e.g., 'authnet')"""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable gateway name"""
        pass

    @abstractmethod
    async def authorize_and_capture(
        self,
        credentials: Credentials,
        amount: Decimal,
        opaque_token: str,
        order_ref: str,
        data_descriptor: Optional[str] = None,
        linked_registrant_ids: Optional[List[int]] = None
    ) -> ProcessorResult:
        """
        Charge a client-tokenized card.

        A response carrying a transaction id is reconciled through
        get_transaction_detail before returning; without one, the raw
        processor response is returned as a decline.
        """
        pass

    @abstractmethod
    async def get_transaction_detail(
        self,
        credentials: Credentials,
        transaction_id: str,
        linked_registrant_ids: Optional[List[int]] = None
    ) -> ProcessorResult:
        """Current processor-side state of a transaction"""
        pass

    @abstractmethod
    async def refund(self, credentials: Credentials, transaction_id: str, amount: Decimal) -> ProcessorResult:
        """
        Refund a settled transaction.

        Must look the transaction up first: one still pending settlement
        resolves to VOID_REQUIRED without a refund call.
        """
        pass

    @abstractmethod
    def build_hosted_payment_page_config(
        self,
        credentials: Credentials,
        amount: Decimal,
        order_ref: str,
        invoice_description: str,
        options: HostedPaymentOptions
    ) -> Dict[str, Any]:
        """Request body for the hosted payment page (no I/O)"""
        pass

    @abstractmethod
    async def get_hosted_payment_page(self, credentials: Credentials, config: Dict[str, Any]) -> ProcessorResult:
        pass

    @abstractmethod
    async def get_merchant_details(self, credentials: Credentials) -> ProcessorResult:
        pass
