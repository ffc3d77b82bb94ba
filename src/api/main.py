from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from ..core.logging import setup_logging
from ..core.config import settings
from ..services.errors import ExtractionError, SessionStateError, TemplateError, TemplatePackageError
from .routers import health, invoice, sessions

logger = setup_logging()
app = FastAPI(title="IRF Automation")


# Add custom exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(ExtractionError)
async def extraction_exception_handler(request: Request, exc: ExtractionError):
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc), "error": "extraction"},
    )


@app.exception_handler(TemplateError)
async def template_exception_handler(request: Request, exc: TemplateError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": f"Template Error: {exc}", "errors": exc.errors, "error": "template"},
    )


@app.exception_handler(TemplatePackageError)
async def template_package_exception_handler(request: Request, exc: TemplatePackageError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "error": "template_package"},
    )


@app.exception_handler(SessionStateError)
async def session_state_exception_handler(request: Request, exc: SessionStateError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "error": "session_state"},
    )


# Configure CORS to allow the review form frontend
# CORS_ORIGINS can be set in .env as comma-separated list
# Example: CORS_ORIGINS=http://localhost:3000,https://your-frontend.com
allowed_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

app.include_router(health.router)
app.include_router(invoice.router)
app.include_router(sessions.router)
