"""
Tests para endpoints de salud.
"""
import pytest
from httpx import AsyncClient
from unittest.mock import patch, AsyncMock

from app.database import DatabasePool
from app.document_store import DocumentStore


def _stores(database_ok: bool, document_store_ok: bool):
    return (
        patch.object(DatabasePool, 'ping', AsyncMock(return_value=database_ok)),
        patch.object(DocumentStore, 'ping', AsyncMock(return_value=document_store_ok)),
    )


class TestHealthEndpoints:
    """Tests para endpoints de health check."""

    @pytest.mark.asyncio
    async def test_root_endpoint(self, client: AsyncClient):
        """GET / identifica el servicio."""
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "Affiliate Payments API"

    @pytest.mark.asyncio
    async def test_both_stores_up(self, client: AsyncClient):
        """Con ambos stores disponibles responde healthy."""
        database, document_store = _stores(True, True)
        with database, document_store:
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"]["ok"] is True
        assert data["document_store"]["ok"] is True

    @pytest.mark.asyncio
    async def test_document_store_down(self, client: AsyncClient):
        """Sin document store responde 503 degraded."""
        database, document_store = _stores(True, False)
        with database, document_store:
            response = await client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["database"]["ok"] is True
        assert data["document_store"]["ok"] is False


class TestStorePing:
    """Tests para DatabasePool.ping"""

    @pytest.mark.asyncio
    async def test_database_ping_failure_is_false(self):
        """Un pool que no conecta reporta False sin lanzar."""
        with patch.object(DatabasePool, 'create_pool', AsyncMock(side_effect=OSError("connection refused"))):
            assert await DatabasePool.ping() is False
