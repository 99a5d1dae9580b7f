"""
Tests para el registro de transacciones y las notificaciones al ledger.
"""
import pytest
from decimal import Decimal
from unittest.mock import patch, AsyncMock

from app.services import ledger_service, transactions_service
from tests.utils.factories import TransactionRowFactory


class TestLedgerNotification:
    """Tests para ledger_service"""

    @pytest.mark.asyncio
    async def test_notify_charge_updates_registrant(self, mock_db):
        """El cobro se aplica al balance del registrante."""
        updated = await ledger_service.notify_charge(7, 42, "60123", Decimal("100.00"))

        assert updated is True
        query, args = mock_db.get_call_history()[-1][1:]
        assert "UPDATE event_registrants" in query
        assert args == (7, Decimal("100.00"), "60123")

    @pytest.mark.asyncio
    async def test_notify_charge_unknown_registrant(self, mock_db):
        """Registrante inexistente no actualiza nada."""
        mock_db.execute_returns["UPDATE event_registrants"] = "UPDATE 0"

        assert await ledger_service.notify_charge(999, 42, "60123", Decimal("1")) is False

    @pytest.mark.asyncio
    async def test_schedule_runs_in_background(self, mock_db):
        """La notificación corre como tarea y se puede esperar."""
        task = ledger_service.schedule_charge_notification(7, 42, "60123", Decimal("10"))

        await task
        assert mock_db.was_called_with("execute", "UPDATE event_registrants")

    @pytest.mark.asyncio
    async def test_schedule_failure_is_only_logged(self):
        """Un error en la notificación no se propaga."""
        with patch.object(ledger_service, 'notify_charge', AsyncMock(side_effect=RuntimeError("db down"))):
            task = ledger_service.schedule_charge_notification(7, 42, "60123", Decimal("10"))
            await task

        assert task.exception() is None

    def test_no_registrant_no_task(self):
        """Sin registrante no se crea tarea."""
        assert ledger_service.schedule_charge_notification(None, 42, "60123", Decimal("10")) is None


class TestTransactionRecords:
    """Tests para transactions_service"""

    @pytest.mark.asyncio
    async def test_record_transaction(self, mock_db):
        """Cada intento se inserta como fila nueva."""
        mock_db.set_fetchrow_return("INSERT INTO payment_transactions", TransactionRowFactory.create(
            external_transaction_id="60123", linked_registrant_ids=[7, 8]
        ))

        record = await transactions_service.record_transaction(
            merchant_id=42,
            amount=Decimal("100.00"),
            status="capturedPendingSettlement",
            external_transaction_id="60123",
            registrant_id=7,
            linked_registrant_ids=[7, 8],
        )

        assert record.external_transaction_id == "60123"
        assert record.amount == Decimal("100.00")
        assert record.linked_registrant_ids == [7, 8]

    @pytest.mark.asyncio
    async def test_record_refund_references_original(self, mock_db):
        """El refund apunta a la transacción original."""
        mock_db.set_fetchrow_return("INSERT INTO payment_transactions", TransactionRowFactory.create(
            external_transaction_id="9100", status="refunded", ref_transaction_id="9001"
        ))

        record = await transactions_service.record_refund(42, "9100", "9001", Decimal("50"))

        args = mock_db.get_call_history()[-1][2]
        assert args[4] == "refunded"
        assert args[5] == "9001"
        assert record.ref_transaction_id == "9001"
