import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.config import settings
from app.core.logging import setup_logging
from app.core.exceptions import api_exception_handler, general_exception_handler, APIError
from app.core.middleware import request_logging_middleware
from app.database import DatabasePool
from app.document_store import DocumentStore

# Initialize logging
setup_logging()
logger = logging.getLogger(__name__)

SERVICE_NAME = "Affiliate Payments API"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    try:
        await DocumentStore.ensure_indexes()
    except Exception as e:
        logger.warning(f"Could not ensure document store indexes: {e}")

    yield

    # Shutdown: release the relational pool and the document client
    await DatabasePool.close_pool()
    await DocumentStore.close_client()


app = FastAPI(
    title=SERVICE_NAME,
    description="Gateway configuration and Authorize.Net payments for event registration affiliates",
    version="1.0.0",
    debug=settings.debug,
    docs_url="/docs",
    redirect_slashes=True,
    lifespan=lifespan
)

# Exception handlers
app.add_exception_handler(APIError, api_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(request_logging_middleware)

# Import and include routers
from app.routers import payments, gateways, transactions

# Card payments (Authorize.Net)
app.include_router(payments.router, prefix="/authnet", tags=["authnet"])

# Recorded transactions
app.include_router(transactions.router, prefix="/transactions", tags=["transactions"])

# Gateway configuration
app.include_router(gateways.router, prefix="/gateways", tags=["gateways"])

@app.get("/")
async def root():
    return {
        "service": SERVICE_NAME,
        "version": "1.0.0",
        "database": settings.db_name,
        "environment": settings.environment
    }

@app.get("/health")
async def health():
    """Both stores answer; 503 while either is unreachable"""
    database_ok = await DatabasePool.ping()
    document_store_ok = await DocumentStore.ping()
    healthy = database_ok and document_store_ok
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "database": {"name": settings.db_name, "host": settings.db_host, "ok": database_ok},
            "document_store": {"name": settings.mongo_db_name, "ok": document_store_ok},
        }
    )

# Auto-start server if run directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
