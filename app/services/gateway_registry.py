"""
Gateway Registry

Static table of the gateway types a merchant can configure. Each entry
carries everything the config store needs to know about a type:

- display name
- the field whose non-blank value means "configured"
- the relational columns backing each field (and the value written on delete)
- blank defaults used for populate-if-absent and the available-gateways list

Adding a gateway type is one entry here.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List

from app.core.exceptions import ConfigurationError


TEXT = "text"
FLAG = "flag"


@dataclass(frozen=True)
class RelationalField:
    """A type-specific field stored in the affiliate_merchant row"""
    column: str
    kind: str = TEXT

    @property
    def cleared(self) -> Any:
        """Value written when the gateway is deleted"""
        return 0 if self.kind == FLAG else None

    def to_column(self, value: Any) -> Any:
        if self.kind == FLAG:
            if isinstance(value, str):
                return 1 if value.strip().lower() in ("1", "true", "yes", "on") else 0
            return 1 if value else 0
        if value is None:
            return None
        return str(value).strip()


@dataclass(frozen=True)
class GatewayType:
    key: str
    display_name: str
    enabled_field: str
    relational_fields: Dict[str, RelationalField]
    defaults: Dict[str, Any] = field(default_factory=dict)

    def is_enabled(self, fields: Dict[str, Any]) -> bool:
        value = fields.get(self.enabled_field)
        return value is not None and str(value).strip() != ""


AUTHNET = GatewayType(
    key="authnet",
    display_name="Authorize.Net",
    enabled_field="auth_APILogin",
    relational_fields={
        "auth_APILogin": RelationalField("auth_api_login"),
        "auth_transactionKey": RelationalField("auth_transaction_key"),
        "auth_sandbox": RelationalField("auth_sandbox", FLAG),
        "auth_testMode": RelationalField("auth_test_mode", FLAG),
        "auth_visaCheckout": RelationalField("auth_visa_checkout", FLAG),
        "auth_iFrame": RelationalField("auth_iframe", FLAG),
    },
    defaults={
        "auth_APILogin": "",
        "auth_transactionKey": "",
        "auth_sandbox": False,
        "auth_testMode": 0,
        "auth_visaCheckout": 0,
        "auth_iFrame": 0,
        # Hosted payment page display options (document store only)
        "auth_cardCode": 1,
        "auth_bankAccount": False,
        "auth_billAddressAsk": True,
        "auth_billAddressReq": True,
        "auth_shipAddressAsk": True,
        "auth_shipAddressReq": False,
        "auth_emailAddressAsk": False,
        "auth_emailAddressReq": False,
        "auth_captcha": False,
    },
)

PAYPAL_EXPRESS = GatewayType(
    key="paypalexpress",
    display_name="PayPal Express",
    enabled_field="paypalExpressAPIUser",
    relational_fields={
        "paypalExpressAPIUser": RelationalField("paypal_express_api_user"),
        "paypalExpressAPIPwd": RelationalField("paypal_express_api_pwd"),
        "paypalExpressAPISignature": RelationalField("paypal_express_api_signature"),
    },
    defaults={
        "paypalExpressAPIUser": "",
        "paypalExpressAPIPwd": "",
        "paypalExpressAPISignature": "",
    },
)

PAYPAL_PAYFLOW = GatewayType(
    key="paypalpayflow",
    display_name="PayPal Payflow",
    enabled_field="paypalPayflowUser",
    relational_fields={
        "paypalPayflowVendor": RelationalField("paypal_payflow_vendor"),
        "paypalPayflowPwd": RelationalField("paypal_payflow_pwd"),
        "paypalPayflowUser": RelationalField("paypal_payflow_user"),
        "paypalPayflowPartner": RelationalField("paypal_payflow_partner"),
        "paypalPayflowTestMode": RelationalField("paypal_payflow_test_mode", FLAG),
    },
    defaults={
        "paypalPayflowVendor": "",
        "paypalPayflowPwd": "",
        "paypalPayflowUser": "",
        "paypalPayflowPartner": "",
        "paypalPayflowTestMode": 0,
    },
)

PAYZANG = GatewayType(
    key="payzang",
    display_name="PayZang",
    enabled_field="payZangTokenizationKey",
    relational_fields={
        "payZangTokenizationKey": RelationalField("payzang_tokenization_key"),
        "payZangSecurityKey": RelationalField("payzang_security_key"),
    },
    defaults={
        "payZangTokenizationKey": "",
        "payZangSecurityKey": "",
    },
)

STRIPE = GatewayType(
    key="stripe",
    display_name="Stripe",
    enabled_field="stripeUserID",
    relational_fields={
        "stripeAccessToken": RelationalField("stripe_access_token"),
        "stripeLiveMode": RelationalField("stripe_live_mode", FLAG),
        "stripeRefreshToken": RelationalField("stripe_refresh_token"),
        "stripeScope": RelationalField("stripe_scope"),
        "stripePublishableKey": RelationalField("stripe_publishable_key"),
        "stripeUserID": RelationalField("stripe_user_id"),
        "stripeTokenType": RelationalField("stripe_token_type"),
        "stripeReqBillingAdd": RelationalField("stripe_req_billing_add", FLAG),
    },
    defaults={
        "stripeAccessToken": "",
        "stripeLiveMode": 0,
        "stripeRefreshToken": "",
        "stripeScope": "",
        "stripePublishableKey": "",
        "stripeUserID": "",
        "stripeTokenType": "",
        "stripeReqBillingAdd": 0,
    },
)

VANTIV_WORLDPAY = GatewayType(
    key="vantiv-worldpay",
    display_name="Vantiv-Worldpay",
    enabled_field="vwApplicationID",
    relational_fields={
        "vwApplicationID": RelationalField("vw_application_id"),
        "vwAcceptorID": RelationalField("vw_acceptor_id"),
        "vwAccountToken": RelationalField("vw_account_token"),
        "vwAccountID": RelationalField("vw_account_id"),
    },
    defaults={
        "vwApplicationID": "",
        "vwAcceptorID": "",
        "vwAccountToken": "",
        "vwAccountID": "",
    },
)

GATEWAY_REGISTRY: Dict[str, GatewayType] = {
    gateway.key: gateway
    for gateway in (AUTHNET, PAYPAL_EXPRESS, PAYPAL_PAYFLOW, PAYZANG, STRIPE, VANTIV_WORLDPAY)
}


def get_gateway_type(key: Optional[str]) -> GatewayType:
    """Look up a gateway type by key (case-insensitive)"""
    gateway = GATEWAY_REGISTRY.get((key or "").strip().lower())
    if not gateway:
        raise ConfigurationError(
            f"Unknown gateway: {key}",
            details={"available": sorted(GATEWAY_REGISTRY.keys())}
        )
    return gateway


def is_enabled(key: str, fields: Dict[str, Any]) -> bool:
    return get_gateway_type(key).is_enabled(fields)


def blank_gateway(key: str) -> Dict[str, Any]:
    """Default field values for a gateway that has never been configured"""
    return dict(get_gateway_type(key).defaults)


def fields_from_row(gateway: GatewayType, row: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Type-specific fields read from an affiliate_merchant row, over the blank defaults"""
    fields = dict(gateway.defaults)
    if not row:
        return fields
    for name, relational in gateway.relational_fields.items():
        value = row.get(relational.column)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
        if isinstance(gateway.defaults.get(name), bool):
            value = bool(value)
        fields[name] = value
    return fields


def all_relational_columns() -> List[str]:
    return [
        relational.column
        for gateway in GATEWAY_REGISTRY.values()
        for relational in gateway.relational_fields.values()
    ]


def relational_values(gateway: GatewayType, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Column -> value for the relational-backed fields present in an update"""
    return {
        relational.column: relational.to_column(fields[name])
        for name, relational in gateway.relational_fields.items()
        if name in fields
    }


def cleared_values(gateway: GatewayType) -> Dict[str, Any]:
    """Column -> value that leaves no secret behind once a gateway is deleted"""
    return {
        relational.column: relational.cleared
        for relational in gateway.relational_fields.values()
    }
