"""
FastAPI application entry point.
"""

import time
from fastapi import FastAPI, Request

from chirashi import __version__
from chirashi.logging_config import setup_logging, get_logger
from chirashi.api.snapshot import router as snapshot_router

setup_logging(log_file="logs/api.log", json_logs=True)
logger = get_logger("api")

app = FastAPI(
    title="Chirashi API",
    description="Daily supermarket flyer prices",
    version=__version__,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests and their response times."""
    start_time = time.time()
    client_ip = request.client.host if request.client else "unknown"

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"Request failed: {e}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "client_ip": client_ip,
            },
            exc_info=True
        )
        raise

    logger.info(
        "Request completed",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round((time.time() - start_time) * 1000, 2),
            "client_ip": client_ip,
        }
    )
    return response


app.include_router(snapshot_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {"status": "healthy", "version": __version__, "service": "chirashi-api"}
