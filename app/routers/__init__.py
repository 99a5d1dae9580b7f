# Routers module for the Affiliate Payments API
from app.routers import payments
from app.routers import gateways
from app.routers import transactions
