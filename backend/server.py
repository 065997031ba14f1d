from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from database import database
from signing import config as signing_config
from signing.errors import SigningError, http_status_for
from signing.routes import documents_router, public_router, notary_router

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting LegalDesk Signing API")
    use_mongo = signing_config.SIGNING_STORE != "memory" and not os.environ.get("PYTEST_RUNNING")
    if use_mongo:
        await database.connect()
    else:
        logger.info("Signing store: in-memory (no MongoDB connection)")

    if signing_config.OTP_MODE != "random":
        logger.warning("OTP_MODE=fixed: every signer receives the same test code. Set OTP_MODE=random in production.")
    if not signing_config.OTP_PEPPER:
        logger.warning("OTP_PEPPER is not set; OTP and ID hashes are unpeppered")

    yield

    # Shutdown
    logger.info("Shutting down LegalDesk Signing API")
    if use_mongo:
        await database.close()

# Create FastAPI app
app = FastAPI(
    title="LegalDesk Signing API",
    description="Document signing, identity verification and notarization",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(documents_router)  # Digital signature (owner + local signers)
app.include_router(public_router)  # Signing links for remote recipients
app.include_router(notary_router)  # Appointments + witness verification

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": "LegalDesk Signing",
        "version": "1.0.0",
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development"),
        "store": signing_config.SIGNING_STORE,
    }


# Workflow errors: the document is unchanged, the caller may correct and retry
@app.exception_handler(SigningError)
async def signing_exception_handler(request: Request, exc: SigningError):
    status_code = http_status_for(exc)
    logger.info(f"Signing request rejected path={request.url.path} code={exc.code} status={status_code}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"error_code": exc.code, "message": exc.message}},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Request validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(errors), "request_id": request_id},
    )


def jsonable_errors(errors):
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
