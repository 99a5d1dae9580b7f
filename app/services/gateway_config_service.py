"""
Gateway configuration across the relational store and the document store.

The relational affiliate_merchant row is authoritative for whether a gateway
is configured, for its secrets and for the merchant's default gateway
(pay_method). The gateways collection holds per-(merchant, type) documents
read by the rest of the platform; it may lag behind and is repaired lazily.

Default changes always clear before they set, so a concurrent reader can see
"no default" for a moment but never two defaults.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

from pymongo.errors import DuplicateKeyError

from app.config import settings
from app.database import get_db_connection
from app.document_store import get_gateways_collection
from app.models.gateway import GatewayConfig, GatewaySet, AvailableGateway, GatewayWriteResult
from app.services.gateway_registry import (
    GATEWAY_REGISTRY, GatewayType, get_gateway_type,
    fields_from_row, relational_values, cleared_values, all_relational_columns
)
from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ACTIVE = {"is_deleted": {"$ne": True}}

MERCHANT_COLUMNS = ", ".join(["affiliate_id", "pay_method", *all_relational_columns()])

# Lazy repairs run in the background; references kept until they finish
_repair_tasks: set = set()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _default_type(row: Optional[Dict[str, Any]]) -> Optional[str]:
    if not row:
        return None
    pay_method = (row.get("pay_method") or "").strip().lower()
    return pay_method or None


# ============================================================================
# RELATIONAL STORE
# ============================================================================

async def _populate_merchant(conn, merchant_id: int):
    """Create the merchant's row with blank gateway columns if it does not exist"""
    await conn.execute("""
        INSERT INTO affiliate_merchant (affiliate_id)
        VALUES ($1)
        ON CONFLICT (affiliate_id) DO NOTHING
    """, merchant_id)


async def _fetch_merchant_row(conn, merchant_id: int) -> Optional[Dict[str, Any]]:
    row = await conn.fetchrow(
        f"SELECT {MERCHANT_COLUMNS} FROM affiliate_merchant WHERE affiliate_id = $1",
        merchant_id
    )
    return dict(row) if row else None


async def _update_columns(conn, merchant_id: int, values: Dict[str, Any]):
    # Column names come from the registry, never from the request
    if not values:
        return
    assignments = ", ".join(
        f"{column} = ${position}" for position, column in enumerate(values, start=2)
    )
    await conn.execute(
        f"UPDATE affiliate_merchant SET {assignments}, updated_at = NOW() WHERE affiliate_id = $1",
        merchant_id, *values.values()
    )


async def _clear_default_column(conn, merchant_id: int, only_if: Optional[str] = None):
    if only_if:
        await conn.execute("""
            UPDATE affiliate_merchant SET pay_method = NULL, updated_at = NOW()
            WHERE affiliate_id = $1 AND pay_method = $2
        """, merchant_id, only_if)
    else:
        await conn.execute("""
            UPDATE affiliate_merchant SET pay_method = NULL, updated_at = NOW()
            WHERE affiliate_id = $1
        """, merchant_id)


async def _set_default_column(conn, merchant_id: int, gateway_type: str):
    await conn.execute("""
        UPDATE affiliate_merchant SET pay_method = $2, updated_at = NOW()
        WHERE affiliate_id = $1
    """, merchant_id, gateway_type)


# ============================================================================
# DOCUMENT STORE
# ============================================================================

def _document_filter(merchant_id: int, gateway_type: str) -> Dict[str, Any]:
    return {"merchant_id": merchant_id, "type": gateway_type, **ACTIVE}


async def _upsert_document(collection, merchant_id: int, gateway: GatewayType, fields: Dict[str, Any]):
    """Upsert keyed by (merchant, type); blank defaults fill only a new document"""
    now = _now()
    update = {
        "$set": {
            **{f"fields.{name}": value for name, value in fields.items()},
            "name": gateway.display_name,
            "is_deleted": False,
            "last_updated": now,
        },
        "$setOnInsert": {
            **{
                f"fields.{name}": value
                for name, value in gateway.defaults.items()
                if name not in fields
            },
            "is_default": False,
            "created_at": now,
        },
    }
    try:
        await collection.update_one(_document_filter(merchant_id, gateway.key), update, upsert=True)
    except DuplicateKeyError:
        # A concurrent writer inserted the document between our match and insert
        logger.info(f"Gateway document {gateway.key} for merchant {merchant_id} inserted concurrently, updating")
        await collection.update_one(_document_filter(merchant_id, gateway.key), {"$set": update["$set"]})


async def _set_document_default(collection, merchant_id: int, gateway_type: str, is_default: bool):
    await collection.update_one(
        _document_filter(merchant_id, gateway_type),
        {"$set": {"is_default": is_default, "last_updated": _now()}}
    )


def _config_from_document(
    merchant_id: int,
    gateway: GatewayType,
    document: Dict[str, Any],
    relational_fields: Dict[str, Any],
    is_default: bool
) -> GatewayConfig:
    fields = {**gateway.defaults, **(document.get("fields") or {})}
    # Secrets and enabled flags always come from the system of record
    for name in gateway.relational_fields:
        fields[name] = relational_fields[name]
    return GatewayConfig(
        merchant_id=merchant_id,
        type=gateway.key,
        name=gateway.display_name,
        fields=fields,
        is_default=is_default,
        last_updated=document.get("last_updated"),
    )


async def _repair_documents(merchant_id: int, configs: List[GatewayConfig]):
    collection = get_gateways_collection()
    for config in configs:
        try:
            await collection.update_one(
                _document_filter(merchant_id, config.type),
                {"$setOnInsert": {
                    "name": config.name,
                    "fields": config.fields,
                    "is_default": config.is_default,
                    "is_deleted": False,
                    "created_at": _now(),
                    "last_updated": _now(),
                }},
                upsert=True
            )
            logger.info(f"Repaired gateway document {config.type} for merchant {merchant_id}")
        except DuplicateKeyError:
            logger.info(f"Gateway document {config.type} for merchant {merchant_id} already written by another request")
        except Exception as e:
            logger.error(f"Gateway document repair failed for merchant {merchant_id} ({config.type}): {e}")


def _schedule_repair(merchant_id: int, configs: List[GatewayConfig]):
    task = asyncio.create_task(_repair_documents(merchant_id, configs))
    _repair_tasks.add(task)
    task.add_done_callback(_repair_tasks.discard)


# ============================================================================
# PUBLIC OPERATIONS
# ============================================================================

async def read_config(merchant_id: int) -> GatewaySet:
    """
    Gateways configured for a merchant.

    The relational row decides which gateways are enabled and which one is
    the default. Document copies supply the remaining fields; when a
    document is missing, an entry is synthesized from the relational row
    and a background repair is scheduled. Reads never wait on the repair.
    """
    if merchant_id <= 0:
        return GatewaySet(merchant_id=merchant_id)

    async with get_db_connection() as conn:
        await _populate_merchant(conn, merchant_id)
        row = await _fetch_merchant_row(conn, merchant_id)

    default_type = _default_type(row)
    enabled: Dict[str, Dict[str, Any]] = {}
    for key, gateway in GATEWAY_REGISTRY.items():
        fields = fields_from_row(gateway, row)
        if gateway.is_enabled(fields):
            enabled[key] = fields

    collection = get_gateways_collection()
    documents = {
        doc.get("type"): doc
        for doc in await collection.find({"merchant_id": merchant_id, **ACTIVE}).to_list(length=None)
    }

    gateways: List[GatewayConfig] = []
    missing: List[GatewayConfig] = []
    for key in sorted(enabled):
        gateway = GATEWAY_REGISTRY[key]
        is_default = key == default_type
        document = documents.get(key)
        if document is None:
            config = GatewayConfig(
                merchant_id=merchant_id,
                type=key,
                name=gateway.display_name,
                fields=enabled[key],
                is_default=is_default,
                synthesized=True,
            )
            missing.append(config)
        else:
            if bool(document.get("is_default")) != is_default:
                logger.warning(
                    f"Default flag diverges for merchant {merchant_id} ({key}): "
                    f"document={bool(document.get('is_default'))} relational={is_default}"
                )
            config = _config_from_document(merchant_id, gateway, document, enabled[key], is_default)
        gateways.append(config)

    stale = sorted(set(documents) - set(enabled))
    if stale:
        logger.warning(f"Documents list gateways not configured in relational store for merchant {merchant_id}: {stale}")

    if missing:
        logger.warning(
            f"Gateway documents missing for merchant {merchant_id}: "
            f"{[config.type for config in missing]} - repair requested"
        )
        _schedule_repair(merchant_id, missing)

    return GatewaySet(
        merchant_id=merchant_id,
        gateways=gateways,
        enabled_gateways=sorted(enabled),
        default_gateway=default_type if default_type in enabled else None,
    )


async def write_config(merchant_id: int, gateway_type: str, fields: Optional[Dict[str, Any]]) -> GatewayWriteResult:
    """
    Create or update one gateway for a merchant.

    `fields` holds type-specific values plus an optional `isDefault`. With
    isDefault true, every default is cleared in both stores before the new
    one is set.
    """
    if merchant_id <= 0:
        return GatewayWriteResult(merchant_id=merchant_id, type=gateway_type, changed=False)

    gateway = get_gateway_type(gateway_type)

    if fields is None:
        fields = {}
    if not isinstance(fields, dict):
        raise ValidationError("Gateway fields must be an object")

    fields = dict(fields)
    is_default = _as_bool(fields.pop("isDefault", None))

    unknown = sorted(set(fields) - set(gateway.defaults))
    if unknown:
        raise ValidationError(
            f"Unknown fields for gateway {gateway.key}",
            details={"fields": unknown}
        )

    collection = get_gateways_collection()

    if is_default:
        await collection.update_many(
            {"merchant_id": merchant_id, "is_default": True},
            {"$set": {"is_default": False, "last_updated": _now()}}
        )

    async with get_db_connection() as conn:
        await _populate_merchant(conn, merchant_id)
        if is_default:
            await _clear_default_column(conn, merchant_id)
        elif is_default is False:
            await _clear_default_column(conn, merchant_id, only_if=gateway.key)
        await _update_columns(conn, merchant_id, relational_values(gateway, fields))

    await _upsert_document(collection, merchant_id, gateway, fields)

    if is_default:
        async with get_db_connection() as conn:
            await _set_default_column(conn, merchant_id, gateway.key)
        await _set_document_default(collection, merchant_id, gateway.key, True)
    elif is_default is False:
        await _set_document_default(collection, merchant_id, gateway.key, False)

    logger.info(f"Gateway {gateway.key} updated for merchant {merchant_id} (default={is_default})")

    return GatewayWriteResult(merchant_id=merchant_id, type=gateway.key, is_default=is_default)


async def delete_config(merchant_id: int, gateway_type: str) -> GatewayWriteResult:
    """
    Remove a gateway from a merchant.

    The document is tombstoned (kept for audit); the relational columns for
    the type are cleared so no secret remains in the system of record.
    """
    if merchant_id <= 0:
        return GatewayWriteResult(merchant_id=merchant_id, type=gateway_type, changed=False)

    gateway = get_gateway_type(gateway_type)
    collection = get_gateways_collection()

    existing = await collection.find_one(_document_filter(merchant_id, gateway.key))

    async with get_db_connection(use_transaction=False) as conn:
        row = await _fetch_merchant_row(conn, merchant_id)

    was_default = _default_type(row) == gateway.key or bool(existing and existing.get("is_default"))

    now = _now()
    await collection.update_many(
        _document_filter(merchant_id, gateway.key),
        {"$set": {"is_deleted": True, "is_default": False, "deleted_at": now, "last_updated": now}}
    )

    async with get_db_connection() as conn:
        if was_default:
            await _clear_default_column(conn, merchant_id)
        await _update_columns(conn, merchant_id, cleared_values(gateway))

    logger.info(f"Gateway {gateway.key} deleted for merchant {merchant_id} (was_default={was_default})")

    return GatewayWriteResult(merchant_id=merchant_id, type=gateway.key, is_default=False)


async def reset_default(merchant_id: int) -> GatewayWriteResult:
    """Clear the merchant's default gateway in the relational store"""
    if merchant_id <= 0:
        return GatewayWriteResult(merchant_id=merchant_id, changed=False)

    async with get_db_connection() as conn:
        await _clear_default_column(conn, merchant_id)

    logger.info(f"Default gateway reset for merchant {merchant_id}")
    return GatewayWriteResult(merchant_id=merchant_id)


async def get_available_gateways(vertical: str) -> List[AvailableGateway]:
    """Gateway types the platform offers, each with blank defaults"""
    async with get_db_connection(use_transaction=False) as conn:
        gateway_list = await conn.fetchval("""
            SELECT value_text FROM global_vars
            WHERE attribute_name = 'payMethod' AND vertical = $1
        """, vertical)

    if gateway_list:
        keys = [key.strip().lower() for key in gateway_list.split(",") if key.strip()]
    else:
        keys = settings.allowed_gateway_list

    available = []
    for key in keys:
        gateway = GATEWAY_REGISTRY.get(key)
        if not gateway:
            logger.warning(f"Ignoring unknown gateway in platform list: {key}")
            continue
        available.append(AvailableGateway(
            type=gateway.key,
            name=gateway.display_name,
            fields=dict(gateway.defaults),
        ))
    return available


async def get_gateway_document(merchant_id: int, gateway_type: str) -> Optional[GatewayConfig]:
    """Active document for one gateway, without relational overlay"""
    gateway = get_gateway_type(gateway_type)
    document = await get_gateways_collection().find_one(_document_filter(merchant_id, gateway.key))
    if not document:
        return None
    return GatewayConfig(
        merchant_id=merchant_id,
        type=gateway.key,
        name=gateway.display_name,
        fields={**gateway.defaults, **(document.get("fields") or {})},
        is_default=bool(document.get("is_default")),
        last_updated=document.get("last_updated"),
    )
