import logging
import sys
import uuid
from typing import Dict, Any, Optional
from datetime import datetime, timezone
from app.config import settings

class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        if hasattr(record, 'levelname'):
            color = self.COLORS.get(record.levelname, '')
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)

def setup_logging():
    """Setup logging configuration"""

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    console_format = ColoredFormatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_format)
    root_logger.addHandler(console_handler)

    # Suppress verbose third-party logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger

def new_correlation_id() -> str:
    """Short id quoted to the user and written to the log for processor faults"""
    return uuid.uuid4().hex[:12]

def log_request_context(merchant_id: Optional[int] = None, correlation_id: str = None, **extra) -> Dict[str, Any]:
    """Create request context for logging"""
    context = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if merchant_id is not None:
        context["merchant_id"] = merchant_id

    if correlation_id:
        context["correlation_id"] = correlation_id

    context.update({k: v for k, v in extra.items() if v is not None})
    return context
