"""
Payment orchestration for Authorize.Net.

Each operation resolves fresh credentials, drives the transaction gateway
and returns a plain dict. Errors come back as structured payloads built by
error_payload(); processor faults additionally get a correlation id, an
error log line and a Discord alert.
"""
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, List, Optional, Union

from app.config import settings
from app.database import get_db_connection
from app.models.payment import (
    SubjectType, PayByCreditCardRequest, PaymentFormRequest,
    HostedPaymentOptions, TransactionDetail, TransactionStatus, MultiCheckoutStatus
)
from app.services import credentials_service, gateway_config_service, transactions_service, ledger_service
from app.services.gateway_registry import blank_gateway, get_gateway_type
from app.services.gateways import get_transaction_gateway, ProcessorOutcome
from app.services.discord_error_notifier import alert_fault
from app.core.exceptions import (
    APIError, ValidationError, ProcessorDeclined, ProcessorFault, VoidRequired, error_payload
)
from app.core.logging import new_correlation_id, log_request_context

logger = logging.getLogger(__name__)

# Authorize.Net refId / invoiceNumber limit
MAX_REFERENCE_LENGTH = 20

FAULT_MESSAGE = "Payment processor unavailable, please try again"


# ============================================================================
# HELPERS
# ============================================================================

def build_reference(order_ref: str, now_ms: Optional[int] = None) -> str:
    """order_ref plus the submission time in ms, cut to the processor limit"""
    suffix = f"-{now_ms if now_ms is not None else int(time.time() * 1000)}"
    prefix = order_ref.strip()[:max(MAX_REFERENCE_LENGTH - len(suffix), 0)]
    return f"{prefix}{suffix}"


def normalize_transaction_id(transaction_id: Union[str, int]) -> str:
    """'prefix:rawId' -> 'rawId'"""
    return str(transaction_id).strip().split(":")[-1].strip()


def parse_registrant_ids(value: Any) -> List[int]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        parts = value
    else:
        parts = str(value).split(",")
    ids = []
    for part in parts:
        part = str(part).strip()
        if part.isdigit():
            ids.append(int(part))
    return ids


def _detail_payload(detail: TransactionDetail) -> Dict[str, Any]:
    payload = detail.model_dump(mode="json")
    payload["amount"] = str(detail.amount) if detail.amount is not None else None
    return payload


def _declined_payload(result, default_message: str) -> Dict[str, Any]:
    return error_payload(ProcessorDeclined(
        result.error_text or default_message,
        code=result.error_code,
        response=result.response,
    ))


def _fault_payload(fault: ProcessorFault, operation: str, **context) -> Dict[str, Any]:
    correlation_id = new_correlation_id()
    fault.correlation_id = correlation_id
    logger.error(
        f"Processor fault during {operation} [{correlation_id}]: {fault.message}",
        extra={"context": log_request_context(correlation_id=correlation_id, operation=operation, **context)}
    )
    alert_fault(fault, correlation_id, {"operation": operation, **context})

    payload = error_payload(fault)
    payload["error"] = FAULT_MESSAGE
    return payload


async def _resolve_credentials(subject_type: SubjectType, subject_id: int):
    if subject_type == SubjectType.REGISTRANT:
        return await credentials_service.get_credentials_by_registrant(subject_id)
    return await credentials_service.get_credentials_by_merchant(subject_id)


async def _record_attempt(write, **kwargs):
    """Ledger rows are written after the processor call; a failed write must not hide its result"""
    try:
        await write(**kwargs)
    except Exception as e:
        transaction_id = kwargs.get("external_transaction_id") or kwargs.get("refund_transaction_id")
        logger.error(
            f"Failed to record transaction {transaction_id} for merchant {kwargs.get('merchant_id')}: {e}",
            exc_info=True
        )


async def _linked_registrants(registrant_id: int) -> MultiCheckoutStatus:
    async with get_db_connection(use_transaction=False) as conn:
        multicheckout = await conn.fetchval("""
            SELECT multicheckout FROM event_registrants
            WHERE registrant_id = $1
        """, registrant_id)

    ids = parse_registrant_ids(multicheckout)
    return MultiCheckoutStatus(multi_checkout=bool(ids), registrants=ids)


# ============================================================================
# OPERATIONS
# ============================================================================

async def get_merchant_details(subject_type: Union[SubjectType, str], subject_id: int) -> Dict[str, Any]:
    """Public client key for the merchant, looked up by merchant or by registrant"""
    try:
        subject = SubjectType(subject_type)
    except ValueError:
        return error_payload(ValidationError(
            f"Unknown subject type: {subject_type}",
            details={"allowed": [s.value for s in SubjectType]}
        ))

    try:
        credentials = await _resolve_credentials(subject, subject_id)
        result = await get_transaction_gateway().get_merchant_details(credentials)
    except ProcessorFault as e:
        return _fault_payload(e, "get_merchant_details", subject=f"{subject.value}:{subject_id}")
    except APIError as e:
        return error_payload(e)

    if not result.success:
        return _declined_payload(result, "Merchant details unavailable")

    merchant = result.merchant
    return {
        "login": merchant.login,
        "publicClientKey": merchant.public_client_key,
        "affiliateID": credentials.merchant_id,
        "testMode": merchant.test_mode,
        "auth_sandbox": merchant.sandbox,
    }


async def pay_by_credit_card(request: PayByCreditCardRequest) -> Dict[str, Any]:
    """
    Charge an Accept.js opaque token.

    Returns the reconciled transaction detail. When the processor assigned
    no transaction id, its raw response is returned unchanged.
    """
    reference = build_reference(request.order_ref)
    linked_ids = list(request.linked_registrant_ids or [])

    gateway = get_transaction_gateway()
    try:
        if request.multi_checkout and not linked_ids and request.registrant_id:
            linked_ids = (await _linked_registrants(request.registrant_id)).registrants

        credentials = await credentials_service.get_credentials_by_merchant(request.merchant_id)
        result = await gateway.authorize_and_capture(
            credentials,
            request.amount,
            request.data_value,
            reference,
            data_descriptor=request.data_descriptor,
            linked_registrant_ids=linked_ids or None,
        )
    except ProcessorFault as e:
        await _record_attempt(
            transactions_service.record_transaction,
            merchant_id=request.merchant_id,
            amount=request.amount,
            status=TransactionStatus.ERROR.value,
            registrant_id=request.registrant_id,
            linked_registrant_ids=linked_ids,
            gateway=gateway.name,
        )
        return _fault_payload(e, "pay_by_credit_card", merchant_id=request.merchant_id, reference=reference)
    except APIError as e:
        return error_payload(e)

    detail = result.detail
    await _record_attempt(
        transactions_service.record_transaction,
        merchant_id=request.merchant_id,
        amount=request.amount,
        status=detail.normalized_status.value if detail else TransactionStatus.DECLINED.value,
        external_transaction_id=result.transaction_id,
        registrant_id=request.registrant_id,
        linked_registrant_ids=linked_ids,
        gateway=gateway.name,
    )

    if detail is None:
        logger.info(f"Charge {reference} for merchant {request.merchant_id} declined without a transaction id")
        return result.response

    if result.success and not request.multi_checkout:
        ledger_service.schedule_charge_notification(
            request.registrant_id,
            request.merchant_id,
            result.transaction_id,
            detail.amount if detail.amount is not None else request.amount,
        )

    payload = _detail_payload(detail)
    payload["success"] = result.success
    payload["reference"] = reference
    if not result.success:
        payload["error_code"] = result.error_code
        payload["error_text"] = result.error_text
    return payload


async def refund_transaction(
    merchant_id: int,
    transaction_id: Union[str, int],
    refund_amount: Union[Decimal, str, float],
    registrant_id: Optional[int] = None
) -> Dict[str, Any]:
    """Refund a settled transaction; unsettled ones come back as void required"""
    raw_id = normalize_transaction_id(transaction_id)
    try:
        amount = Decimal(str(refund_amount))
    except InvalidOperation:
        amount = Decimal(0)

    if not raw_id:
        return error_payload(ValidationError("Transaction id is required"))
    if not amount.is_finite() or amount <= 0:
        return error_payload(ValidationError("Refund amount must be positive", details={"refund_amount": str(refund_amount)}))

    gateway = get_transaction_gateway()
    try:
        credentials = await credentials_service.get_credentials_by_merchant(merchant_id)
        result = await gateway.refund(credentials, raw_id, amount)
    except ProcessorFault as e:
        return _fault_payload(e, "refund_transaction", merchant_id=merchant_id, transaction_id=raw_id)
    except APIError as e:
        return error_payload(e)

    if result.outcome == ProcessorOutcome.VOID_REQUIRED:
        return error_payload(VoidRequired(details={
            "transaction_id": raw_id,
            "status": result.detail.status if result.detail else None,
            "next_action": "void",
        }))

    if not result.success:
        return _declined_payload(result, "Refund declined")

    await _record_attempt(
        transactions_service.record_refund,
        merchant_id=merchant_id,
        refund_transaction_id=result.transaction_id,
        original_transaction_id=raw_id,
        amount=amount,
        registrant_id=registrant_id,
        gateway=gateway.name,
    )

    return {
        "success": True,
        "transaction_id": raw_id,
        "refund_transaction_id": result.transaction_id,
        "amount": str(amount),
        "response": result.response,
    }


async def get_transaction_details(merchant_id: int, transaction_id: Union[str, int]) -> Dict[str, Any]:
    raw_id = normalize_transaction_id(transaction_id)
    try:
        credentials = await credentials_service.get_credentials_by_merchant(merchant_id)
        result = await get_transaction_gateway().get_transaction_detail(credentials, raw_id)
    except ProcessorFault as e:
        return _fault_payload(e, "get_transaction_details", merchant_id=merchant_id, transaction_id=raw_id)
    except APIError as e:
        return error_payload(e)

    if not result.success:
        return _declined_payload(result, "Transaction not found")
    return _detail_payload(result.detail)


async def check_multi_checkout(registrant_id: int) -> Dict[str, Any]:
    """Whether the registrant pays for a linked group, and who is in it"""
    status = await _linked_registrants(registrant_id)
    return status.model_dump()


async def get_payment_form(request: PaymentFormRequest) -> Dict[str, Any]:
    """Hosted payment page token for a registrant, with the merchant's display options"""
    gateway = get_transaction_gateway()
    try:
        credentials = await credentials_service.get_credentials_by_merchant(request.merchant_id)
        document = await gateway_config_service.get_gateway_document(request.merchant_id, gateway.name)

        async with get_db_connection(use_transaction=False) as conn:
            registration = await conn.fetchrow("""
                SELECT r.multicheckout, e.event_title
                FROM event_registrants r
                JOIN events e ON e.event_id = r.event_id
                WHERE r.registrant_id = $1
            """, request.registrant_id)

        if not registration:
            raise ValidationError("Registrant not found", details={"registrant_id": request.registrant_id})

        title = (registration['event_title'] or '').replace('&', 'and')
        linked_ids = parse_registrant_ids(registration['multicheckout'])
        if linked_ids:
            ids = ",".join(str(registrant_id) for registrant_id in linked_ids)
            invoice_description = f"Multiple Attendee Registration: Attendee IDs ({ids}) for {title}"
        else:
            invoice_description = f"Attendee Registration: {title}"

        fields = document.fields if document else blank_gateway(gateway.name)
        origin = (request.origin or settings.base_url).rstrip("/")
        options = HostedPaymentOptions.from_gateway_fields(
            fields, iframe_communicator_url=f"{origin}{settings.iframe_communicator_path}"
        )

        config = gateway.build_hosted_payment_page_config(
            credentials, request.amount, str(request.registrant_id), invoice_description, options
        )
        result = await gateway.get_hosted_payment_page(credentials, config)
    except ProcessorFault as e:
        return _fault_payload(e, "get_payment_form", merchant_id=request.merchant_id, registrant_id=request.registrant_id)
    except APIError as e:
        return error_payload(e)

    if not result.success:
        return _declined_payload(result, "Hosted payment page unavailable")

    return {
        "token": result.hosted_page.token,
        "merchant_id": credentials.merchant_id,
        "registrant_id": request.registrant_id,
        "invoice_description": invoice_description,
        "sandbox": credentials.sandbox,
    }


async def find_transactions(gateway: str, transaction_id: Union[str, int]) -> Dict[str, Any]:
    """Recorded attempts for a processor transaction id, including its refunds"""
    try:
        gateway_type = get_gateway_type(gateway)
    except APIError as e:
        return error_payload(e)

    raw_id = normalize_transaction_id(transaction_id)
    records = await transactions_service.find_by_gateway_and_id(gateway_type.key, raw_id)
    return {
        "gateway": gateway_type.key,
        "transaction_id": raw_id,
        "transactions": [record.model_dump(mode="json") for record in records],
    }
