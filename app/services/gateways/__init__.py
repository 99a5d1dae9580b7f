# Transaction Gateways
from app.services.gateways.base import TransactionGateway, ProcessorResult, ProcessorOutcome
from app.services.gateways.authorize_net import AuthorizeNetGateway

GATEWAYS = {
    'authnet': AuthorizeNetGateway,
}

def get_transaction_gateway(name: str = 'authnet') -> TransactionGateway:
    """Get gateway instance by name"""
    gateway_class = GATEWAYS.get(name.lower())
    if not gateway_class:
        raise ValueError(f"Unknown gateway: {name}. Available: {list(GATEWAYS.keys())}")
    return gateway_class()
