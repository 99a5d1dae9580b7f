# Models module for the Affiliate Payments API
from app.models.gateway import (
    GatewayConfig, GatewaySet, AvailableGateway, GatewayWriteResult
)
from app.models.payment import (
    TransactionStatus, SubjectType, Credentials,
    PayByCreditCardRequest, PaymentFormRequest,
    HostedPaymentOptions, TransactionDetail, MultiCheckoutStatus,
    TransactionRecord
)
