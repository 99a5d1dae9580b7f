import logging
from typing import List

from app.database import get_db_connection
from app.models.payment import Credentials
from app.core.exceptions import CredentialsNotFound

logger = logging.getLogger(__name__)


def _single_credential(rows: List, subject: str) -> Credentials:
    """
    Exactly one row with a login and a transaction key, or CredentialsNotFound.

    Zero rows and several rows are treated the same: an ambiguous match must
    never route a charge to a guessed merchant account.
    """
    if len(rows) != 1:
        if len(rows) > 1:
            logger.warning(f"Multiple credential rows for {subject} ({len(rows)}), refusing to choose")
        raise CredentialsNotFound(details={"subject": subject})

    row = rows[0]
    login = (row['login'] or '').strip()
    transaction_key = (row['transaction_key'] or '').strip()
    if not login or not transaction_key:
        raise CredentialsNotFound(details={"subject": subject})

    return Credentials(
        merchant_id=row['affiliate_id'],
        login=login,
        transaction_key=transaction_key,
        sandbox=bool(row['auth_sandbox']),
    )


async def get_credentials_by_merchant(merchant_id: int) -> Credentials:
    """Authorize.Net credentials for an affiliate"""
    async with get_db_connection(use_transaction=False) as conn:
        rows = await conn.fetch("""
            SELECT m.affiliate_id,
                   m.auth_api_login AS login,
                   m.auth_transaction_key AS transaction_key,
                   m.auth_sandbox
            FROM affiliate_merchant m
            WHERE m.affiliate_id = $1
        """, merchant_id)

    return _single_credential(rows, f"merchant:{merchant_id}")


async def get_credentials_by_registrant(registrant_id: int) -> Credentials:
    """Authorize.Net credentials of the affiliate running the registrant's event"""
    async with get_db_connection(use_transaction=False) as conn:
        rows = await conn.fetch("""
            SELECT m.affiliate_id,
                   m.auth_api_login AS login,
                   m.auth_transaction_key AS transaction_key,
                   m.auth_sandbox
            FROM event_registrants r
            JOIN events e ON e.event_id = r.event_id
            JOIN affiliate_merchant m ON m.affiliate_id = e.affiliate_id
            WHERE r.registrant_id = $1
        """, registrant_id)

    return _single_credential(rows, f"registrant:{registrant_id}")
