"""
Tests para el gateway de Authorize.Net contra un procesador simulado.
"""
import json
import pytest
from decimal import Decimal

from app.config import settings
from app.core.exceptions import ProcessorFault
from app.models.payment import HostedPaymentOptions, TransactionStatus
from app.services.gateways import get_transaction_gateway, ProcessorOutcome
from app.services.gateways.authorize_net import AuthorizeNetGateway
from tests.utils.factories import AuthNetResponseFactory


class TestAuthorizeAndCapture:
    """Tests para authorize_and_capture"""

    @pytest.mark.asyncio
    async def test_charge_is_reconciled(self, authnet_gateway, processor, credentials):
        """Un transId distinto de cero se reconcilia con el detalle."""
        processor.set_response("authCapture", AuthNetResponseFactory.auth_capture("60123"))
        processor.set_response("detail", AuthNetResponseFactory.transaction_detail("60123", amount="100.00"))

        result = await authnet_gateway.authorize_and_capture(
            credentials, Decimal("100.00"), "opaque-token", "order-7-1760000000000"
        )

        assert result.outcome == ProcessorOutcome.SUCCESS
        assert result.transaction_id == "60123"
        assert result.detail.normalized_status == TransactionStatus.CAPTURED_PENDING_SETTLEMENT
        assert result.detail.amount == Decimal("100.00")
        assert len(processor.calls("detail")) == 1

    @pytest.mark.asyncio
    async def test_charge_request_shape(self, authnet_gateway, processor, credentials):
        """El request lleva opaqueData, referencia acotada y enlace multi-checkout."""
        processor.set_response("authCapture", AuthNetResponseFactory.auth_capture("60123"))
        processor.set_response("detail", AuthNetResponseFactory.transaction_detail("60123"))

        result = await authnet_gateway.authorize_and_capture(
            credentials, Decimal("25"), "opaque-token", "a-very-long-order-reference-1760000000000",
            linked_registrant_ids=[7, 8]
        )

        body = processor.calls("authCapture")[0]["createTransactionRequest"]
        transaction = body["transactionRequest"]
        assert list(transaction) == ["transactionType", "amount", "payment", "order", "userFields"]
        assert body["merchantAuthentication"] == {"name": "api-login-42", "transactionKey": "txn-key-42"}
        assert transaction["amount"] == "25.00"
        assert transaction["payment"]["opaqueData"] == {
            "dataDescriptor": "COMMON.ACCEPT.INAPP.PAYMENT",
            "dataValue": "opaque-token",
        }
        assert len(body["refId"]) == 20
        assert transaction["order"]["invoiceNumber"] == body["refId"]
        assert "7,8" in transaction["order"]["description"]
        assert transaction["userFields"]["userField"] == [{"name": "multiCheckout", "value": "7,8"}]
        assert result.detail.linked_registrant_ids == [7, 8]

    @pytest.mark.asyncio
    async def test_sandbox_credentials_use_sandbox_endpoint(self, authnet_gateway, processor, credentials):
        """Credenciales sandbox van al endpoint de pruebas."""
        processor.set_response("merchant", AuthNetResponseFactory.merchant_details())

        await authnet_gateway.get_merchant_details(credentials)
        await authnet_gateway.get_merchant_details(credentials.model_copy(update={"sandbox": False}))

        assert processor.urls == [settings.authnet_sandbox_url, settings.authnet_production_url]

    @pytest.mark.asyncio
    async def test_zero_transaction_id_returns_raw_response(self, authnet_gateway, processor, credentials):
        """transId cero devuelve la respuesta cruda sin reconciliar."""
        raw = AuthNetResponseFactory.declined_without_transaction()
        processor.set_response("authCapture", raw)

        result = await authnet_gateway.authorize_and_capture(credentials, Decimal("10"), "bad", "order-1")

        assert result.outcome == ProcessorOutcome.DECLINED
        assert result.response == raw
        assert result.detail is None
        assert result.error_code == "33"
        assert processor.calls("detail") == []

    @pytest.mark.asyncio
    async def test_declined_with_transaction_id_is_reconciled(self, authnet_gateway, processor, credentials):
        """Un rechazo con transId también trae el detalle normalizado."""
        processor.set_response("authCapture", AuthNetResponseFactory.auth_capture("60555", response_code="2"))
        processor.set_response("detail", AuthNetResponseFactory.transaction_detail("60555", status="declined", response_code=2))

        result = await authnet_gateway.authorize_and_capture(credentials, Decimal("10"), "tok", "order-1")

        assert result.outcome == ProcessorOutcome.DECLINED
        assert result.detail.normalized_status == TransactionStatus.DECLINED
        assert result.error_text == "This transaction has been declined."

    @pytest.mark.asyncio
    async def test_timeout_raises_processor_fault(self, authnet_gateway, processor, credentials):
        """Un timeout es ProcessorFault, no un rechazo."""
        processor.raise_timeout()

        with pytest.raises(ProcessorFault) as exc_info:
            await authnet_gateway.authorize_and_capture(credentials, Decimal("10"), "tok", "order-1")

        assert exc_info.value.status_code == 502
        assert len(processor.calls("authCapture")) == 1

    @pytest.mark.asyncio
    async def test_http_error_raises_processor_fault(self, authnet_gateway, processor, credentials):
        """Un status HTTP distinto de 200 es ProcessorFault."""
        processor.status_code = 503

        with pytest.raises(ProcessorFault) as exc_info:
            await authnet_gateway.get_transaction_detail(credentials, "60123")

        assert exc_info.value.details["http_status"] == 503

    @pytest.mark.asyncio
    async def test_reconciliation_fault_keeps_successful_charge(self, authnet_gateway, processor, credentials):
        """Si falla solo la lectura del detalle, el cobro sigue siendo exitoso."""
        processor.set_response("authCapture", AuthNetResponseFactory.auth_capture("60123"))
        processor.set_response("detail", lambda body: ["not", "an", "object"])

        result = await authnet_gateway.authorize_and_capture(credentials, Decimal("100"), "tok", "order-7")

        assert result.success is True
        assert result.detail.normalized_status == TransactionStatus.PENDING
        assert result.detail.transaction_id == "60123"

    @pytest.mark.asyncio
    async def test_reconciliation_error_keeps_successful_charge(self, authnet_gateway, processor, credentials):
        """Si el detalle responde E00040 tras un cobro aprobado, el cobro sigue siendo exitoso."""
        processor.set_response("authCapture", AuthNetResponseFactory.auth_capture("60123"))
        processor.set_response("detail", AuthNetResponseFactory.detail_not_found())

        result = await authnet_gateway.authorize_and_capture(credentials, Decimal("100"), "tok", "order-7")

        assert result.success is True
        assert result.transaction_id == "60123"
        assert result.detail.status == "reconciliationPending"
        assert result.detail.auth_amount == Decimal("100.00")
        assert result.response["transactionResponse"]["transId"] == "60123"


class TestTransactionDetail:
    """Tests para get_transaction_detail"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,expected", [
        ("settledSuccessfully", TransactionStatus.CAPTURED),
        ("capturedPendingSettlement", TransactionStatus.CAPTURED_PENDING_SETTLEMENT),
        ("authorizedPendingCapture", TransactionStatus.AUTHORIZED),
        ("refundSettledSuccessfully", TransactionStatus.REFUNDED),
        ("voided", TransactionStatus.VOIDED),
        ("generalError", TransactionStatus.ERROR),
        ("somethingNew", TransactionStatus.PENDING),
    ])
    async def test_status_mapping(self, authnet_gateway, processor, credentials, status, expected):
        """Los estados del procesador se normalizan."""
        processor.set_response("detail", AuthNetResponseFactory.transaction_detail("1", status=status))

        result = await authnet_gateway.get_transaction_detail(credentials, "1")

        assert result.detail.status == status
        assert result.detail.normalized_status == expected

    @pytest.mark.asyncio
    async def test_unknown_transaction_is_declined_result(self, authnet_gateway, processor, credentials):
        """Transacción inexistente devuelve un rechazo, no una excepción."""
        processor.set_response("detail", AuthNetResponseFactory.detail_not_found())

        result = await authnet_gateway.get_transaction_detail(credentials, "404")

        assert result.outcome == ProcessorOutcome.DECLINED
        assert result.error_code == "E00040"


class TestRefund:
    """Tests para refund"""

    @pytest.mark.asyncio
    async def test_pending_settlement_requires_void(self, authnet_gateway, processor, credentials):
        """capturedPendingSettlement devuelve VOID_REQUIRED sin llamar refund."""
        processor.set_response("detail", AuthNetResponseFactory.transaction_detail("9001"))

        result = await authnet_gateway.refund(credentials, "9001", Decimal("50.00"))

        assert result.outcome == ProcessorOutcome.VOID_REQUIRED
        assert result.detail.status == "capturedPendingSettlement"
        assert processor.calls("refund") == []

    @pytest.mark.asyncio
    async def test_settled_transaction_refunded_once(self, authnet_gateway, processor, credentials):
        """Una transacción liquidada genera exactamente un refund."""
        processor.set_response("detail", AuthNetResponseFactory.transaction_detail(
            "9001", status="settledSuccessfully", card_number="XXXX4242"
        ))
        processor.set_response("refund", AuthNetResponseFactory.refund("9100"))

        result = await authnet_gateway.refund(credentials, "9001", Decimal("50"))

        assert result.outcome == ProcessorOutcome.SUCCESS
        assert result.transaction_id == "9100"

        refunds = processor.calls("refund")
        assert len(refunds) == 1
        transaction = refunds[0]["createTransactionRequest"]["transactionRequest"]
        assert list(transaction) == ["transactionType", "amount", "payment", "refTransId", "transactionSettings"]
        assert transaction["amount"] == "50.00"
        assert transaction["refTransId"] == "9001"
        assert transaction["payment"]["creditCard"] == {"cardNumber": "4242", "expirationDate": "XXXX"}
        assert transaction["transactionSettings"]["setting"] == [
            {"settingName": "duplicateWindow", "settingValue": str(settings.authnet_duplicate_window)}
        ]

    @pytest.mark.asyncio
    async def test_failed_lookup_skips_refund(self, authnet_gateway, processor, credentials):
        """Si el detalle falla no se intenta el refund."""
        processor.set_response("detail", AuthNetResponseFactory.detail_not_found())

        result = await authnet_gateway.refund(credentials, "404", Decimal("5"))

        assert result.outcome == ProcessorOutcome.DECLINED
        assert processor.calls("refund") == []

    @pytest.mark.asyncio
    async def test_refund_declined_by_processor(self, authnet_gateway, processor, credentials):
        """Un refund rechazado queda como DECLINED con el error del procesador."""
        processor.set_response("detail", AuthNetResponseFactory.transaction_detail("9001", status="settledSuccessfully"))
        processor.set_response("refund", AuthNetResponseFactory.refund("0", response_code="3"))

        result = await authnet_gateway.refund(credentials, "9001", Decimal("5"))

        assert result.outcome == ProcessorOutcome.DECLINED
        assert result.error_code == "54"


class TestHostedPaymentPage:
    """Tests para la página de pago hospedada"""

    def test_config_has_nine_settings(self, authnet_gateway, credentials):
        """La configuración trae los nueve settings con las opciones del merchant."""
        options = HostedPaymentOptions(
            captcha=True,
            bank_account=True,
            iframe_communicator_url="https://site.example/authnetCommunicator.cfm"
        )

        config = authnet_gateway.build_hosted_payment_page_config(
            credentials, Decimal("75.5"), "7", "Attendee Registration: Expo", options
        )

        request = config["getHostedPaymentPageRequest"]
        assert request["transactionRequest"]["amount"] == "75.50"
        assert request["transactionRequest"]["order"] == {
            "invoiceNumber": "7",
            "description": "Attendee Registration: Expo",
        }
        settings_by_name = {
            s["settingName"]: json.loads(s["settingValue"])
            for s in request["hostedPaymentSettings"]["setting"]
        }
        assert len(settings_by_name) == 9
        assert settings_by_name["hostedPaymentButtonOptions"] == {"text": "Pay"}
        assert settings_by_name["hostedPaymentSecurityOptions"] == {"captcha": True}
        assert settings_by_name["hostedPaymentPaymentOptions"] == {
            "cardCodeRequired": True, "showCreditCard": True, "showBankAccount": True
        }
        assert settings_by_name["hostedPaymentIFrameCommunicatorUrl"] == {
            "url": "https://site.example/authnetCommunicator.cfm"
        }
        assert settings_by_name["hostedPaymentReturnOptions"] == {"showReceipt": False}

    @pytest.mark.asyncio
    async def test_hosted_page_token(self, authnet_gateway, processor, credentials):
        """El token de la página hospedada se devuelve en el resultado."""
        processor.set_response("hostedPage", AuthNetResponseFactory.hosted_page("tok-1"))
        config = authnet_gateway.build_hosted_payment_page_config(
            credentials, Decimal("10"), "7", "desc", HostedPaymentOptions()
        )

        result = await authnet_gateway.get_hosted_payment_page(credentials, config)

        assert result.success is True
        assert result.hosted_page.token == "tok-1"


class TestGatewayFactory:
    """Tests para get_transaction_gateway"""

    def test_default_is_authnet(self):
        """El gateway por defecto es Authorize.Net."""
        gateway = get_transaction_gateway()

        assert isinstance(gateway, AuthorizeNetGateway)
        assert gateway.name == "authnet"

    def test_unknown_gateway(self):
        """Gateway desconocido lanza ValueError."""
        with pytest.raises(ValueError):
            get_transaction_gateway("bold")
