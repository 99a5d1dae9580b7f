from pymongo import AsyncMongoClient, ASCENDING
from app.config import settings
import logging

logger = logging.getLogger(__name__)

GATEWAYS_COLLECTION = "gateways"

class DocumentStore:
    _client = None

    @classmethod
    def get_client(cls) -> AsyncMongoClient:
        if cls._client is None:
            cls._client = AsyncMongoClient(
                settings.mongo_url,
                serverSelectionTimeoutMS=settings.mongo_timeout_ms,
                connectTimeoutMS=settings.mongo_timeout_ms,
                tz_aware=True
            )
            logger.info(f"Document store client created: {settings.mongo_db_name}")
        return cls._client

    @classmethod
    async def close_client(cls):
        if cls._client is not None:
            await cls._client.close()
            cls._client = None
            logger.info("Document store client closed")

    @classmethod
    async def ping(cls) -> bool:
        try:
            await cls.get_client().admin.command("ping")
            return True
        except Exception as e:
            logger.warning(f"Document store ping failed: {e}")
            return False

    @classmethod
    async def ensure_indexes(cls):
        """
        At most one live document per (merchant, type); a second concurrent
        insert fails with DuplicateKeyError.
        """
        collection = get_gateways_collection()
        await collection.create_index(
            [("merchant_id", ASCENDING), ("type", ASCENDING)],
            name="merchant_type_unique_active",
            unique=True,
            partialFilterExpression={"is_deleted": False}
        )

def get_gateways_collection():
    """
    Get the gateway documents collection.

    Documents are keyed by (merchant_id, type) among non-deleted entries:
    {merchant_id, type, is_default, is_deleted, deleted_at, fields, last_updated}
    """
    client = DocumentStore.get_client()
    return client[settings.mongo_db_name][GATEWAYS_COLLECTION]
