import logging
import time
from fastapi import Request

logger = logging.getLogger(__name__)

async def request_logging_middleware(request: Request, call_next):
    """Request timing log; path parameters carry merchant and transaction ids, never secrets"""
    start_time = time.time()

    method = request.method
    path = request.url.path

    response = await call_next(request)

    duration = round((time.time() - start_time) * 1000, 2)
    logger.info(f"{method} {path} | {response.status_code} | {duration}ms")

    return response
