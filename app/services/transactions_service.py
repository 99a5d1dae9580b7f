import logging
from typing import Optional, List
from decimal import Decimal

from app.database import get_db_connection
from app.models.payment import TransactionRecord

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = """
    id, external_transaction_id, merchant_id, registrant_id, amount, status,
    ref_transaction_id, gateway, linked_registrant_ids, created_at
"""


def _record_from_row(row) -> TransactionRecord:
    data = dict(row)
    data['linked_registrant_ids'] = list(data.get('linked_registrant_ids') or [])
    return TransactionRecord(**data)


async def record_transaction(
    merchant_id: int,
    amount: Decimal,
    status: str,
    external_transaction_id: Optional[str] = None,
    registrant_id: Optional[int] = None,
    ref_transaction_id: Optional[str] = None,
    linked_registrant_ids: Optional[List[int]] = None,
    gateway: str = "authnet"
) -> TransactionRecord:
    """Insert one charge or refund attempt. Records are never updated or reused."""
    async with get_db_connection() as conn:
        row = await conn.fetchrow(f"""
            INSERT INTO payment_transactions (
                external_transaction_id, merchant_id, registrant_id, amount,
                status, ref_transaction_id, gateway, linked_registrant_ids, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, NOW())
            RETURNING {TRANSACTION_COLUMNS}
        """,
            external_transaction_id,
            merchant_id,
            registrant_id,
            amount,
            status,
            ref_transaction_id,
            gateway,
            linked_registrant_ids or []
        )

    logger.info(
        f"Recorded {gateway} transaction {external_transaction_id or '-'} "
        f"for merchant {merchant_id}: {status} {amount}"
    )
    return _record_from_row(row)


async def record_refund(
    merchant_id: int,
    refund_transaction_id: Optional[str],
    original_transaction_id: str,
    amount: Decimal,
    registrant_id: Optional[int] = None,
    gateway: str = "authnet"
) -> TransactionRecord:
    return await record_transaction(
        merchant_id=merchant_id,
        amount=amount,
        status="refunded",
        external_transaction_id=refund_transaction_id,
        registrant_id=registrant_id,
        ref_transaction_id=original_transaction_id,
        gateway=gateway,
    )


async def find_by_gateway_and_id(gateway: str, transaction_id: str) -> List[TransactionRecord]:
    """A transaction and every refund that references it, oldest first"""
    async with get_db_connection(use_transaction=False) as conn:
        rows = await conn.fetch(f"""
            SELECT {TRANSACTION_COLUMNS}
            FROM payment_transactions
            WHERE gateway = $1
              AND (external_transaction_id = $2 OR ref_transaction_id = $2)
            ORDER BY created_at ASC, id ASC
        """, gateway.lower(), transaction_id)

    return [_record_from_row(row) for row in rows]
