from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

from . import config
from .routers import auth, users
from .services import chain_service

logger = logging.getLogger(__name__)

_STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A missing signing secret is fatal at startup, not per request
    if not config.JWT_SECRET_KEY:
        logger.critical("JWT_SECRET_KEY is not configured. Refusing to start.")
        raise RuntimeError("JWT_SECRET_KEY is not configured")
    logger.info(f"Wallet auth service starting (env={config.APP_ENV})")
    yield


app = FastAPI(
    title="Wallet Auth Backend",
    description="Sign-in with an Ethereum wallet: nonce challenge, signature verification, access and refresh tokens.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- CORS Configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error Handlers ---
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    missing = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
    logger.warning(f"Request validation failed on {request.url.path}: {missing}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"Missing or invalid fields: {', '.join(m for m in missing if m) or 'body'}"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    detail = "Something went wrong!" if config.is_production() else str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": detail})


# Include routers
app.include_router(users.router)
app.include_router(auth.router)


@app.get("/", tags=["Health Check"])
def read_root():
    """Root endpoint for health check."""
    return {
        "status": "ok",
        "message": "Wallet Auth Backend API",
        "endpoints": {"users": "/users", "auth": "/auth", "health": "/api/health"},
    }


@app.get("/api/health", tags=["Health Check"])
def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "environment": config.APP_ENV,
        "ethNode": chain_service.node_status(),
    }


# --- Server Startup (for local development) ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("walletauth.main:app", host="0.0.0.0", port=8000, reload=True)  # Use reload for development
