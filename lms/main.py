# lms/main.py
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
import os
import logging

from lms.config import settings
from lms.database import create_tables
from lms.exceptions import AccessDeniedError
from lms.accounts.router import router as accounts_router
from lms.courses.router import router as courses_router
from lms.quizzes.router import router as quizzes_router
from lms.assignments.router import router as assignments_router
from lms.certificates.router import router as certificates_router
from lms.payments.router import router as payments_router
from lms.media.router import router as media_router
from lms.admin.router import router as admin_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await create_tables()
    logger.info("Application startup complete")
    yield
    # Shutdown
    logger.info("Application shutdown")

# Create FastAPI application
app = FastAPI(
    title="LMS Platform API",
    description="Course delivery with prerequisite-gated lessons, quizzes, payments and certificates",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

# Add trusted host middleware
if settings.ENVIRONMENT == "production":
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )

# Mount static files
os.makedirs(settings.STATIC_DIR, exist_ok=True)
app.mount("/static", StaticFiles(directory=settings.STATIC_DIR), name="static")

# Include routers
app.include_router(accounts_router, prefix="/api/auth", tags=["Authentication"])
app.include_router(courses_router, prefix="/api", tags=["Courses"])
app.include_router(quizzes_router, prefix="/api/quizzes", tags=["Quizzes"])
app.include_router(assignments_router, prefix="/api/assignments", tags=["Assignments"])
app.include_router(certificates_router, prefix="/api/certificates", tags=["Certificates"])
app.include_router(payments_router, prefix="/api/payments", tags=["Payments"])
app.include_router(media_router, prefix="/api/media", tags=["Media"])
app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])

@app.get("/")
async def root():
    return {
        "message": "LMS Platform API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}

# Global exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    content = {
        "error": True,
        "message": exc.detail,
        "status_code": exc.status_code
    }
    if isinstance(exc, AccessDeniedError) and exc.reason:
        content["reason"] = exc.reason
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)
