"""Main application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from marketdata.api.error_handlers import register_exception_handlers
from marketdata.api.routes import router
from marketdata.utils.config import config
from marketdata.utils.logger import StructuredLogger
from marketdata.utils.trace_context import trace_scope

TRACE_HEADER = "X-Trace-Id"

logger = StructuredLogger("Main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    # Startup
    try:
        config.validate()
    except ValueError as e:
        logger.critical("Configuration error", exception=e)
        raise
    logger.info(
        "Market data gateway started",
        context={"host": config.server.host, "port": config.server.port},
    )
    yield
    # Shutdown
    logger.info("Market data gateway stopped")


# Create FastAPI app
app = FastAPI(
    title="Market Data Gateway",
    description="Current prices and OHLCV history with multi-provider fallback",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_requests(request: Request, call_next):
    """Tag every log line of a request with one trace ID and echo it back."""
    with trace_scope(request.headers.get(TRACE_HEADER)) as trace_id:
        response = await call_next(request)
    response.headers[TRACE_HEADER] = trace_id
    return response


register_exception_handlers(app)

# Include API routes
app.include_router(router, prefix="/api", tags=["market"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.server.host, port=config.server.port)
