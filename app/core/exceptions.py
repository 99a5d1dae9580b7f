from fastapi import Request
from fastapi.responses import JSONResponse
import logging
from typing import Dict, Any, Optional
from app.core.logging import log_request_context

logger = logging.getLogger(__name__)

class APIError(Exception):
    """Base API exception"""

    def __init__(self, message: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(APIError):
    """Malformed request"""

    def __init__(self, message: str = "Validation failed", details: Dict[str, Any] = None):
        super().__init__(message, 400, details)

class ConfigurationError(APIError):
    """Unknown gateway type or merchant"""

    def __init__(self, message: str = "Invalid gateway configuration", details: Dict[str, Any] = None):
        super().__init__(message, 400, details)

class CredentialsNotFound(APIError):
    """Zero or more than one credential row for the subject"""

    def __init__(self, message: str = "no credentials found", details: Dict[str, Any] = None):
        super().__init__(message, 404, details)

class ProcessorDeclined(APIError):
    """Business decline reported by the processor"""

    def __init__(
        self,
        message: str = "Transaction declined",
        code: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
        details: Dict[str, Any] = None
    ):
        self.code = code
        self.response = response
        super().__init__(message, 402, details)

class VoidRequired(APIError):
    """Refund attempted before the transaction settled"""

    def __init__(self, message: str = "void required", details: Dict[str, Any] = None):
        super().__init__(message, 409, details)

class ProcessorFault(APIError):
    """Transport failure, timeout or unexpected response shape from the processor"""

    def __init__(self, message: str = "Payment processor unavailable", details: Dict[str, Any] = None):
        self.correlation_id: Optional[str] = None
        super().__init__(message, 502, details)

# error_type -> HTTP status used when a structured payload reaches the transport layer
ERROR_STATUS_CODES = {
    cls.__name__: status
    for cls, status in (
        (ValidationError, 400),
        (ConfigurationError, 400),
        (CredentialsNotFound, 404),
        (ProcessorDeclined, 402),
        (VoidRequired, 409),
        (ProcessorFault, 502),
    )
}

def error_payload(exc: APIError) -> Dict[str, Any]:
    """Render an error as the structured payload returned to callers"""
    payload: Dict[str, Any] = {
        "error": exc.message,
        "error_type": exc.__class__.__name__,
    }
    if isinstance(exc, ProcessorDeclined):
        payload["code"] = exc.code
        payload["response"] = exc.response
    if isinstance(exc, ProcessorFault) and exc.correlation_id:
        payload["correlation_id"] = exc.correlation_id
    payload.update(exc.details)
    return payload

def error_status_code(payload: Dict[str, Any]) -> int:
    return ERROR_STATUS_CODES.get(payload.get("error_type"), 400)

async def api_exception_handler(request: Request, exc: APIError):
    """Handle custom API exceptions with logging"""

    context = log_request_context()
    context.update({
        "error_type": exc.__class__.__name__,
        "status_code": exc.status_code,
        "path": str(request.url.path),
        "method": request.method
    })

    if exc.status_code >= 500:
        logger.error(f"API Error: {exc.message}", extra={"context": context})
    else:
        logger.warning(f"API Error: {exc.message}", extra={"context": context})

    content = error_payload(exc)
    content["timestamp"] = context["timestamp"]
    return JSONResponse(status_code=exc.status_code, content=content)

async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""

    context = log_request_context()
    context.update({
        "error_type": exc.__class__.__name__,
        "path": str(request.url.path),
        "method": request.method
    })

    logger.error(f"Unexpected error: {str(exc)}", extra={"context": context}, exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "timestamp": context["timestamp"]
        }
    )
