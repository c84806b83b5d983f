import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from app.core.logger import logger

class LogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        message = (
            f"Method: {request.method} | "
            f"Path: {request.url.path} | "
            f"Status: {response.status_code} | "
            f"Duration: {process_time:.4f}s"
        )
        # Polling endpoints are hit every few seconds per participant
        if response.status_code >= 500:
            logger.error(message)
        elif request.method == "GET" and "/video-sessions/" in request.url.path:
            logger.debug(message)
        else:
            logger.info(message)

        return response
