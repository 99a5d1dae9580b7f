from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional, List

class Settings(BaseSettings):
    # Relational store (system of record for gateway credentials)
    db_user: str = Field(default="postgres", alias='DB_USER')
    db_host: str = Field(default="localhost", alias='DB_HOST')
    db_password: str = Field(default="", alias='DB_PASSWORD')
    db_port: int = Field(default=5432, alias='DB_PORT')
    db_name: str = Field(default="eventsquid", alias='DB_NAME')

    # Document store (gateway documents read by the rest of the platform)
    mongo_url: str = Field(default="mongodb://localhost:27017", alias='MONGO_URL')
    mongo_db_name: str = Field(default="eventsquid", alias='MONGO_DB_NAME')
    mongo_timeout_ms: int = Field(default=5000, alias='MONGO_TIMEOUT_MS')

    # Authorize.Net - JSON API endpoints
    authnet_sandbox_url: str = Field(
        default="https://apitest.authorize.net/xml/v1/request.api",
        alias='AUTHNET_SANDBOX_URL'
    )
    authnet_production_url: str = Field(
        default="https://api.authorize.net/xml/v1/request.api",
        alias='AUTHNET_PRODUCTION_URL'
    )
    authnet_timeout_seconds: float = Field(default=30.0, alias='AUTHNET_TIMEOUT_SECONDS')
    # Seconds during which the processor rejects an identical refund submission
    authnet_duplicate_window: int = Field(default=5, alias='AUTHNET_DUPLICATE_WINDOW')
    iframe_communicator_path: str = Field(
        default="/authnetCommunicator.cfm",
        alias='IFRAME_COMMUNICATOR_PATH'
    )

    # Platform-wide gateway list used when a vertical has no global setting
    allowed_gateways: str = Field(
        default="authnet,paypalexpress,paypalpayflow,payzang,stripe,vantiv-worldpay",
        alias='ALLOWED_GATEWAYS'
    )

    # App settings
    app_env: str = Field(default="development", alias='APP_ENV')
    environment: str = Field(default="development", alias='NODE_ENV')
    base_url: str = Field(default="http://localhost:8001", alias='BASE_URL')

    # FastAPI specific
    port: int = Field(default=8001, alias='FASTAPI_PORT')
    host: str = Field(default="0.0.0.0", alias='FASTAPI_HOST')
    debug: bool = Field(default=True, alias='DEBUG')

    # CORS configuration
    cors_origins: str = Field(default="*", alias='CORS_ORIGINS')

    # Discord webhooks
    discord_error_webhook_url: Optional[str] = Field(default=None, alias='DISCORD_ERROR_WEBHOOK_URL')

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def db_connection_params(self) -> dict:
        return {
            "host": self.db_host,
            "port": self.db_port,
            "user": self.db_user,
            "password": self.db_password,
            "database": self.db_name,
        }

    @property
    def allowed_gateway_list(self) -> List[str]:
        return [gw.strip().lower() for gw in self.allowed_gateways.split(",") if gw.strip()]

settings = Settings()
