from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import io
import structlog
import time
from contextlib import asynccontextmanager

from models import ErrorResponse, HealthResponse, LedgerReport, TransactionBatch
from services import get_ledger_service
from csv_io import TransactionReader
from config import get_settings
from logging_config import configure_logging

settings = get_settings()

# Configure structured logging
configure_logging(settings)

logger = structlog.get_logger()


def rate_limit() -> str:
    return f"{settings.rate_limit_per_minute}/minute"


# Rate limiting
limiter = Limiter(key_func=get_remote_address)

# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Payments Ledger API", version=settings.app_version)
    yield
    # Shutdown
    logger.info("Shutting down Payments Ledger API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Applies batches of deposits, withdrawals and disputes and returns the resulting account balances",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=settings.allowed_methods,
    allow_headers=settings.allowed_headers,
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)

    logger.info(
        "Request handled",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2)
    )

    return response

# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health"
)
async def health_check():
    return HealthResponse(status="healthy", version=settings.app_version)

# CSV batch endpoint
@app.post(
    "/ledger/process",
    response_model=LedgerReport,
    summary="Process CSV",
    description="Apply a CSV body of type,client,tx,amount rows and return the final balances",
    responses={
        200: {"description": "Batch applied; rejected rows are counted in stats"},
        400: {"description": "Body is not UTF-8 text"},
        413: {"description": "Body exceeds the configured size limit"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Internal server error"}
    }
)
@limiter.limit(rate_limit)
async def process_csv(request: Request):
    body = await request.body()
    if len(body) > settings.max_request_size:
        logger.warning("Request body too large", size=len(body), limit=settings.max_request_size)
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Request body too large"
        )

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(
            status_code=400,
            detail="Body must be UTF-8 encoded CSV"
        )

    service = get_ledger_service(settings)
    reader = TransactionReader(io.StringIO(text, newline=""))
    # applying a large batch is CPU bound; keep it off the event loop
    stats = await run_in_threadpool(service.process, reader)

    return LedgerReport(accounts=service.snapshot(), stats=stats, dropped=reader.dropped)

# JSON batch endpoint
@app.post(
    "/ledger/batch",
    response_model=LedgerReport,
    summary="Process JSON batch",
    description="Apply a JSON list of transactions and return the final balances",
    responses={
        200: {"description": "Batch applied; rejected records are counted in stats"},
        422: {"description": "Malformed transaction record"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Internal server error"}
    }
)
@limiter.limit(rate_limit)
def process_batch(request: Request, batch: TransactionBatch):
    logger.info("Batch received", transactions=len(batch.transactions))

    service = get_ledger_service(settings)
    stats = service.process(batch.transactions)

    return LedgerReport(accounts=service.snapshot(), stats=stats)

# Error responses
def error_response(status_code: int, detail: str, error_code: str) -> JSONResponse:
    body = ErrorResponse(detail=detail, error_code=error_code)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(exc.status_code, exc.detail, f"HTTP_{exc.status_code}")

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
    return error_response(500, "Internal server error", "INTERNAL_ERROR")

# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    return {"message": settings.app_name, "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
