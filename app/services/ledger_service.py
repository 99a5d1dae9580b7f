"""
Registration ledger notifications.

After a successful single-registrant charge the registrant's paid amount,
balance and registration status are brought up to date. The charge has
already happened by then, so the notification runs in the background and
its failures are only logged.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Optional

from app.database import get_db_connection

logger = logging.getLogger(__name__)

_ledger_tasks: set = set()


async def notify_charge(
    registrant_id: int,
    merchant_id: int,
    transaction_id: str,
    amount: Decimal
) -> bool:
    """Apply a captured charge to the registrant's balance"""
    async with get_db_connection() as conn:
        result = await conn.execute("""
            UPDATE event_registrants
            SET amount_paid = COALESCE(amount_paid, 0) + $2,
                balance_due = GREATEST(COALESCE(balance_due, 0) - $2, 0),
                reg_status = CASE
                    WHEN COALESCE(balance_due, 0) - $2 <= 0 THEN 'paid'
                    ELSE 'partial'
                END,
                last_transaction_id = $3,
                updated_at = NOW()
            WHERE registrant_id = $1
        """, registrant_id, amount, transaction_id)

    updated = result != "UPDATE 0"
    if updated:
        logger.info(
            f"Ledger updated for registrant {registrant_id} "
            f"(merchant {merchant_id}, transaction {transaction_id}, {amount})"
        )
    else:
        logger.warning(f"Ledger notification found no registrant {registrant_id} for transaction {transaction_id}")
    return updated


async def _notify_in_background(registrant_id: int, merchant_id: int, transaction_id: str, amount: Decimal):
    try:
        await notify_charge(registrant_id, merchant_id, transaction_id, amount)
    except Exception as e:
        logger.error(
            f"Ledger notification failed for registrant {registrant_id} "
            f"(transaction {transaction_id}): {e}",
            exc_info=True
        )


def schedule_charge_notification(
    registrant_id: Optional[int],
    merchant_id: int,
    transaction_id: str,
    amount: Decimal
) -> Optional[asyncio.Task]:
    """Fire-and-forget notify_charge; the caller never waits on it"""
    if not registrant_id:
        logger.info(f"Charge {transaction_id} has no registrant, ledger not notified")
        return None
    task = asyncio.create_task(_notify_in_background(registrant_id, merchant_id, transaction_id, amount))
    _ledger_tasks.add(task)
    task.add_done_callback(_ledger_tasks.discard)
    return task
