"""
Configuración global de pytest y fixtures compartidos.
"""
import pytest
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from unittest.mock import patch
import sys
import os

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.main import app
from app.models.payment import Credentials
from app.services.gateways.authorize_net import AuthorizeNetGateway
from tests.utils.mocks import (
    MerchantTableConnection, MockGatewayCollection, MockAuthNetProcessor,
    patch_db, patch_gateways_collection
)


# ============================================================================
# Cliente HTTP Async
# ============================================================================

@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP async para hacer requests al API."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ============================================================================
# Mock de Base de Datos y Document Store
# ============================================================================

@pytest.fixture(autouse=True)
def mock_db():
    """Tabla affiliate_merchant en memoria detrás de get_db_connection."""
    connection = MerchantTableConnection()
    with patch_db(connection):
        yield connection


@pytest.fixture(autouse=True)
def gateway_collection():
    """Colección gateways en memoria."""
    collection = MockGatewayCollection()
    with patch_gateways_collection(collection):
        yield collection


# ============================================================================
# Authorize.Net
# ============================================================================

@pytest.fixture
def processor():
    """Procesador Authorize.Net simulado."""
    return MockAuthNetProcessor()


@pytest.fixture
def authnet_gateway(processor):
    """Gateway real hablando con el procesador simulado."""
    return AuthorizeNetGateway(transport=processor.transport)


@pytest.fixture
def use_authnet_gateway(authnet_gateway):
    """El orquestador usa el gateway con el procesador simulado."""
    with patch('app.services.payments_service.get_transaction_gateway', return_value=authnet_gateway):
        yield authnet_gateway


@pytest.fixture
def credentials():
    return Credentials(merchant_id=42, login="api-login-42", transaction_key="txn-key-42", sandbox=True)


@pytest.fixture
def ledger_notifications():
    """Captura las notificaciones al ledger sin crear tareas."""
    with patch('app.services.payments_service.ledger_service.schedule_charge_notification') as mock:
        mock.return_value = None
        yield mock


@pytest.fixture
def make_db_row():
    """Factory para crear rows de base de datos."""
    def _make_row(data: dict):
        """Crea un objeto que actúa como asyncpg Record."""
        class MockRecord(dict):
            def __getitem__(self, key):
                return self.get(key)

        return MockRecord(data)

    return _make_row
