"""
Authorize.Net Payment Gateway

Card payments through the Authorize.Net JSON API:
- authorize + capture with an Accept.js opaque token
- transaction detail lookup
- refund (masked-card echo)
- hosted payment page token
- merchant public client key

Documentation: https://developer.authorize.net/api/reference/
"""
import json
import logging
import httpx
from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, InvalidOperation

from app.config import settings
from app.core.exceptions import ProcessorFault
from app.models.payment import (
    Credentials, HostedPaymentOptions, TransactionDetail, TransactionStatus
)
from app.services.gateways.base import (
    TransactionGateway, ProcessorResult, ProcessorOutcome, MerchantDetails, HostedPaymentPage
)

logger = logging.getLogger(__name__)

# refId and invoiceNumber are limited to 20 characters by the API
MAX_REFERENCE_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 255

DEFAULT_DATA_DESCRIPTOR = "COMMON.ACCEPT.INAPP.PAYMENT"

# Authorize.Net transactionStatus -> normalized status
AUTHNET_STATUS_MAP = {
    "authorizedpendingcapture": TransactionStatus.AUTHORIZED,
    "capturedpendingsettlement": TransactionStatus.CAPTURED_PENDING_SETTLEMENT,
    "settledsuccessfully": TransactionStatus.CAPTURED,
    "refundpendingsettlement": TransactionStatus.REFUNDED,
    "refundsettledsuccessfully": TransactionStatus.REFUNDED,
    "voided": TransactionStatus.VOIDED,
    "declined": TransactionStatus.DECLINED,
    "failedreview": TransactionStatus.DECLINED,
    "underreview": TransactionStatus.PENDING,
    "fdspendingreview": TransactionStatus.PENDING,
    "fdsauthorizedpendingreview": TransactionStatus.PENDING,
    "approvedreview": TransactionStatus.AUTHORIZED,
    "couldnotvoid": TransactionStatus.ERROR,
    "expired": TransactionStatus.ERROR,
    "generalerror": TransactionStatus.ERROR,
    "communicationerror": TransactionStatus.ERROR,
    "settlementerror": TransactionStatus.ERROR,
    "returneditem": TransactionStatus.ERROR,
}


def format_amount(amount: Decimal) -> str:
    return str(Decimal(str(amount)).quantize(Decimal("0.01")))


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class AuthorizeNetGateway(TransactionGateway):
    """Authorize.Net implementation over the JSON API"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None):
        self._transport = transport
        self.timeout = timeout or settings.authnet_timeout_seconds

    @property
    def name(self) -> str:
        return "authnet"

    @property
    def display_name(self) -> str:
        return "Authorize.Net"

    def _endpoint(self, credentials: Credentials) -> str:
        if credentials.sandbox:
            return settings.authnet_sandbox_url
        return settings.authnet_production_url

    def _merchant_authentication(self, credentials: Credentials) -> Dict[str, str]:
        return {
            "name": credentials.login,
            "transactionKey": credentials.transaction_key,
        }

    async def _post(self, credentials: Credentials, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send one request. Every failure to get a readable answer raises
        ProcessorFault; processor-level errors come back as data.
        """
        operation = next(iter(payload))
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    self._endpoint(credentials),
                    json=payload,
                    headers={"Content-Type": "application/json", "Accept": "application/json"}
                )
        except httpx.TimeoutException as e:
            logger.error(f"Authorize.Net {operation} timed out after {self.timeout}s: {e}")
            raise ProcessorFault("Payment processor timed out", details={"operation": operation})
        except httpx.RequestError as e:
            logger.error(f"Authorize.Net {operation} request failed: {e}")
            raise ProcessorFault("Failed to connect to payment processor", details={"operation": operation})

        if response.status_code != 200:
            logger.error(f"Authorize.Net {operation} HTTP {response.status_code}")
            raise ProcessorFault(
                "Payment processor returned an HTTP error",
                details={"operation": operation, "http_status": response.status_code}
            )

        try:
            # The JSON API prefixes its body with a UTF-8 BOM
            data = json.loads(response.content.decode("utf-8-sig"))
        except (UnicodeDecodeError, ValueError) as e:
            logger.error(f"Authorize.Net {operation} returned an unreadable body: {e}")
            raise ProcessorFault("Unreadable payment processor response", details={"operation": operation})

        if not isinstance(data, dict) or not isinstance(data.get("messages"), dict):
            logger.error(f"Authorize.Net {operation} returned an unexpected shape")
            raise ProcessorFault("Unexpected payment processor response", details={"operation": operation})

        return data

    @staticmethod
    def _is_ok(data: Dict[str, Any]) -> bool:
        messages = data.get("messages") or {}
        message_list = messages.get("message") or [{}]
        return (
            str(messages.get("resultCode", "")).lower() == "ok"
            and str(message_list[0].get("code", "")).lower() == "i00001"
        )

    @staticmethod
    def _error_of(data: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
        """Most specific error code/text in a response"""
        transaction_response = data.get("transactionResponse") or {}
        errors = transaction_response.get("errors") or []
        if errors:
            return errors[0].get("errorCode"), errors[0].get("errorText")
        message_list = (data.get("messages") or {}).get("message") or []
        if message_list:
            return message_list[0].get("code"), message_list[0].get("text")
        return None, None

    def _declined(self, data: Dict[str, Any], transaction_id: Optional[str] = None) -> ProcessorResult:
        code, text = self._error_of(data)
        return ProcessorResult(
            outcome=ProcessorOutcome.DECLINED,
            transaction_id=transaction_id,
            response=data,
            error_code=code,
            error_text=text,
        )

    def map_status(self, transaction_status: Optional[str]) -> TransactionStatus:
        return AUTHNET_STATUS_MAP.get((transaction_status or "").lower(), TransactionStatus.PENDING)

    def _parse_detail(self, transaction: Dict[str, Any], linked_registrant_ids: Optional[List[int]]) -> TransactionDetail:
        credit_card = (transaction.get("payment") or {}).get("creditCard") or {}
        order = transaction.get("order") or {}
        response_code = transaction.get("responseCode")
        return TransactionDetail(
            transaction_id=str(transaction.get("transId")),
            status=transaction.get("transactionStatus") or "",
            normalized_status=self.map_status(transaction.get("transactionStatus")),
            auth_amount=_to_decimal(transaction.get("authAmount")),
            settle_amount=_to_decimal(transaction.get("settleAmount")),
            card_number=credit_card.get("cardNumber"),
            expiration_date=credit_card.get("expirationDate"),
            card_type=credit_card.get("cardType"),
            invoice_number=order.get("invoiceNumber"),
            response_code=int(response_code) if response_code not in (None, "") else None,
            submitted_at=transaction.get("submitTimeUTC"),
            linked_registrant_ids=linked_registrant_ids or [],
        )

    async def authorize_and_capture(
        self,
        credentials: Credentials,
        amount: Decimal,
        opaque_token: str,
        order_ref: str,
        data_descriptor: Optional[str] = None,
        linked_registrant_ids: Optional[List[int]] = None
    ) -> ProcessorResult:
        reference = order_ref[:MAX_REFERENCE_LENGTH]
        order: Dict[str, Any] = {"invoiceNumber": reference}
        if linked_registrant_ids:
            ids = ",".join(str(registrant_id) for registrant_id in linked_registrant_ids)
            order["description"] = f"Multiple Attendee Registration: Attendee IDs ({ids})"[:MAX_DESCRIPTION_LENGTH]

        transaction_request: Dict[str, Any] = {
            "transactionType": "authCaptureTransaction",
            "amount": format_amount(amount),
            "payment": {
                "opaqueData": {
                    "dataDescriptor": data_descriptor or DEFAULT_DATA_DESCRIPTOR,
                    "dataValue": opaque_token,
                }
            },
            "order": order,
        }
        if linked_registrant_ids:
            transaction_request["userFields"] = {
                "userField": [{"name": "multiCheckout", "value": ids}]
            }

        data = await self._post(credentials, {
            "createTransactionRequest": {
                "merchantAuthentication": self._merchant_authentication(credentials),
                "refId": reference,
                "transactionRequest": transaction_request,
            }
        })

        transaction_response = data.get("transactionResponse") or {}
        transaction_id = str(transaction_response.get("transId") or "").strip()

        if not transaction_id or transaction_id == "0":
            result = self._declined(data)
            logger.warning(
                f"Authorize.Net charge rejected for merchant {credentials.merchant_id} "
                f"ref {reference}: {result.error_code} {result.error_text}"
            )
            return result

        charge_ok = self._is_ok(data) and str(transaction_response.get("responseCode")) == "1"
        logger.info(
            f"Authorize.Net charge {transaction_id} for merchant {credentials.merchant_id} "
            f"ref {reference}: responseCode={transaction_response.get('responseCode')}"
        )

        try:
            reconciled = await self.get_transaction_detail(credentials, transaction_id, linked_registrant_ids)
        except ProcessorFault as e:
            logger.error(f"Reconciliation of Authorize.Net charge {transaction_id} failed: {e.message}")
            reconciled = None
        else:
            if not reconciled.success:
                logger.error(
                    f"Reconciliation of Authorize.Net charge {transaction_id} failed: "
                    f"{reconciled.error_code} {reconciled.error_text}"
                )
                reconciled = None

        # Without a readable detail, the charge response stands in for it
        detail = reconciled.detail if reconciled else TransactionDetail(
            transaction_id=transaction_id,
            status="reconciliationPending",
            normalized_status=TransactionStatus.PENDING if charge_ok else TransactionStatus.DECLINED,
            auth_amount=_to_decimal(format_amount(amount)),
            card_number=transaction_response.get("accountNumber"),
            card_type=transaction_response.get("accountType"),
            invoice_number=reference,
            linked_registrant_ids=linked_registrant_ids or [],
        )

        if charge_ok:
            return ProcessorResult(
                outcome=ProcessorOutcome.SUCCESS,
                transaction_id=transaction_id,
                detail=detail,
                response=data,
            )

        code, text = self._error_of(data)
        return ProcessorResult(
            outcome=ProcessorOutcome.DECLINED,
            transaction_id=transaction_id,
            detail=detail,
            response=data,
            error_code=code,
            error_text=text,
        )

    async def get_transaction_detail(
        self,
        credentials: Credentials,
        transaction_id: str,
        linked_registrant_ids: Optional[List[int]] = None
    ) -> ProcessorResult:
        data = await self._post(credentials, {
            "getTransactionDetailsRequest": {
                "merchantAuthentication": self._merchant_authentication(credentials),
                "transId": str(transaction_id),
            }
        })

        transaction = data.get("transaction")
        if not self._is_ok(data) or not transaction:
            return self._declined(data, transaction_id=str(transaction_id))

        detail = self._parse_detail(transaction, linked_registrant_ids)
        return ProcessorResult(
            outcome=ProcessorOutcome.SUCCESS,
            transaction_id=detail.transaction_id,
            detail=detail,
            response=data,
        )

    async def refund(self, credentials: Credentials, transaction_id: str, amount: Decimal) -> ProcessorResult:
        lookup = await self.get_transaction_detail(credentials, transaction_id)
        if not lookup.success:
            return lookup

        detail = lookup.detail
        if detail.normalized_status == TransactionStatus.CAPTURED_PENDING_SETTLEMENT:
            logger.info(f"Transaction {transaction_id} not settled yet, void required instead of refund")
            return ProcessorResult(
                outcome=ProcessorOutcome.VOID_REQUIRED,
                transaction_id=str(transaction_id),
                detail=detail,
                response=lookup.response,
            )

        last_four = detail.card_last_four
        if not last_four:
            return ProcessorResult(
                outcome=ProcessorOutcome.DECLINED,
                transaction_id=str(transaction_id),
                detail=detail,
                response=lookup.response,
                error_text="Card details unavailable for refund",
            )

        data = await self._post(credentials, {
            "createTransactionRequest": {
                "merchantAuthentication": self._merchant_authentication(credentials),
                "transactionRequest": {
                    "transactionType": "refundTransaction",
                    "amount": format_amount(amount),
                    "payment": {
                        "creditCard": {
                            "cardNumber": last_four,
                            "expirationDate": detail.expiration_date or "XXXX",
                        }
                    },
                    "refTransId": str(transaction_id),
                    "transactionSettings": {
                        "setting": [{
                            "settingName": "duplicateWindow",
                            "settingValue": str(settings.authnet_duplicate_window),
                        }]
                    },
                },
            }
        })

        transaction_response = data.get("transactionResponse") or {}
        refund_id = str(transaction_response.get("transId") or "").strip() or None

        if self._is_ok(data) and str(transaction_response.get("responseCode")) == "1":
            logger.info(f"Refund {refund_id} submitted for transaction {transaction_id} ({format_amount(amount)})")
            return ProcessorResult(
                outcome=ProcessorOutcome.SUCCESS,
                transaction_id=refund_id,
                detail=detail,
                response=data,
            )

        result = self._declined(data, transaction_id=refund_id)
        result.detail = detail
        logger.warning(f"Refund of transaction {transaction_id} declined: {result.error_code} {result.error_text}")
        return result

    def build_hosted_payment_page_config(
        self,
        credentials: Credentials,
        amount: Decimal,
        order_ref: str,
        invoice_description: str,
        options: HostedPaymentOptions
    ) -> Dict[str, Any]:
        hosted_settings = [
            ("hostedPaymentButtonOptions", {"text": options.button_text}),
            ("hostedPaymentOrderOptions", {"show": options.show_order}),
            ("hostedPaymentShippingAddressOptions", {
                "show": options.ship_address_ask,
                "required": options.ship_address_req,
            }),
            ("hostedPaymentBillingAddressOptions", {
                "show": options.bill_address_ask,
                "required": options.bill_address_req,
            }),
            ("hostedPaymentCustomerOptions", {
                "showEmail": options.email_address_ask,
                "requiredEmail": options.email_address_req,
            }),
            ("hostedPaymentPaymentOptions", {
                "cardCodeRequired": options.card_code,
                "showCreditCard": True,
                "showBankAccount": options.bank_account,
            }),
            ("hostedPaymentSecurityOptions", {"captcha": options.captcha}),
            ("hostedPaymentIFrameCommunicatorUrl", {"url": options.iframe_communicator_url}),
            ("hostedPaymentReturnOptions", {"showReceipt": options.show_receipt}),
        ]

        return {
            "getHostedPaymentPageRequest": {
                "merchantAuthentication": self._merchant_authentication(credentials),
                "transactionRequest": {
                    "transactionType": "authCaptureTransaction",
                    "amount": format_amount(amount),
                    "order": {
                        "invoiceNumber": str(order_ref)[:MAX_REFERENCE_LENGTH],
                        "description": invoice_description[:MAX_DESCRIPTION_LENGTH],
                    },
                },
                "hostedPaymentSettings": {
                    "setting": [
                        {"settingName": name, "settingValue": json.dumps(value)}
                        for name, value in hosted_settings
                    ]
                },
            }
        }

    async def get_hosted_payment_page(self, credentials: Credentials, config: Dict[str, Any]) -> ProcessorResult:
        data = await self._post(credentials, config)
        token = data.get("token")
        if not self._is_ok(data) or not token:
            result = self._declined(data)
            logger.warning(f"Hosted payment page refused for merchant {credentials.merchant_id}: {result.error_text}")
            return result

        return ProcessorResult(
            outcome=ProcessorOutcome.SUCCESS,
            response=data,
            hosted_page=HostedPaymentPage(token=token, response=data),
        )

    async def get_merchant_details(self, credentials: Credentials) -> ProcessorResult:
        data = await self._post(credentials, {
            "getMerchantDetailsRequest": {
                "merchantAuthentication": self._merchant_authentication(credentials),
            }
        })

        public_client_key = data.get("publicClientKey")
        if not self._is_ok(data) or not public_client_key:
            return self._declined(data)

        return ProcessorResult(
            outcome=ProcessorOutcome.SUCCESS,
            response=data,
            merchant=MerchantDetails(
                login=credentials.login,
                public_client_key=public_client_key,
                test_mode=bool(data.get("isTestMode")),
                sandbox=credentials.sandbox,
                merchant_name=data.get("merchantName"),
            ),
        )
