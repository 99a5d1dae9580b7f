"""
Tests para el registro de tipos de gateway.
"""
import pytest

from app.core.exceptions import ConfigurationError
from app.services.gateway_registry import (
    GATEWAY_REGISTRY, get_gateway_type, is_enabled, blank_gateway,
    fields_from_row, relational_values, cleared_values, RelationalField, FLAG
)


class TestGatewayLookup:
    """Tests para get_gateway_type"""

    def test_all_platform_types_registered(self):
        """Los seis tipos de gateway están registrados."""
        assert set(GATEWAY_REGISTRY) == {
            "authnet", "stripe", "paypalexpress", "paypalpayflow", "payzang", "vantiv-worldpay"
        }

    def test_lookup_is_case_insensitive(self):
        """La búsqueda ignora mayúsculas y espacios."""
        assert get_gateway_type(" Stripe ").key == "stripe"

    def test_unknown_type_raises_configuration_error(self):
        """Tipo desconocido lanza ConfigurationError con la lista disponible."""
        with pytest.raises(ConfigurationError) as exc_info:
            get_gateway_type("square")

        assert exc_info.value.status_code == 400
        assert "authnet" in exc_info.value.details["available"]


class TestEnabledField:
    """Tests para is_enabled"""

    @pytest.mark.parametrize("key,field", [
        ("authnet", "auth_APILogin"),
        ("stripe", "stripeUserID"),
        ("paypalexpress", "paypalExpressAPIUser"),
        ("paypalpayflow", "paypalPayflowUser"),
        ("payzang", "payZangTokenizationKey"),
        ("vantiv-worldpay", "vwApplicationID"),
    ])
    def test_enabled_when_marker_field_present(self, key, field):
        """Cada tipo se habilita con su campo marcador."""
        assert is_enabled(key, {field: "value"}) is True
        assert is_enabled(key, {field: "   "}) is False
        assert is_enabled(key, {}) is False

    def test_blank_gateway_is_a_copy(self):
        """blank_gateway no expone los defaults compartidos."""
        fields = blank_gateway("authnet")
        fields["auth_APILogin"] = "changed"

        assert GATEWAY_REGISTRY["authnet"].defaults["auth_APILogin"] == ""
        assert fields["auth_cardCode"] == 1


class TestRelationalMapping:
    """Tests para el mapeo campo -> columna"""

    def test_flag_coercion(self):
        """Los flags se guardan como 0/1."""
        flag = RelationalField("auth_sandbox", FLAG)

        assert flag.to_column(True) == 1
        assert flag.to_column("false") == 0
        assert flag.to_column("1") == 1
        assert flag.cleared == 0

    def test_relational_values_only_for_present_fields(self):
        """Solo se escriben las columnas de los campos recibidos."""
        gateway = get_gateway_type("stripe")

        values = relational_values(gateway, {"stripeUserID": " acct_1 ", "stripeLiveMode": True})

        assert values == {"stripe_user_id": "acct_1", "stripe_live_mode": 1}

    def test_cleared_values_cover_every_column(self):
        """Al borrar, todas las columnas del tipo quedan vacías."""
        gateway = get_gateway_type("authnet")

        cleared = cleared_values(gateway)

        assert cleared["auth_api_login"] is None
        assert cleared["auth_transaction_key"] is None
        assert cleared["auth_sandbox"] == 0
        assert len(cleared) == len(gateway.relational_fields)

    def test_fields_from_row_overlays_defaults(self):
        """Los valores de la fila reemplazan los defaults."""
        gateway = get_gateway_type("authnet")

        fields = fields_from_row(gateway, {"auth_api_login": " login ", "auth_sandbox": 1})

        assert fields["auth_APILogin"] == "login"
        assert fields["auth_sandbox"] is True
        assert fields["auth_captcha"] is False
