import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from a .env file at repo root (shell env wins)
load_dotenv()

from fastapi import FastAPI, HTTPException, Request  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from slowapi.errors import RateLimitExceeded  # noqa: E402
from slowapi.middleware import SlowAPIMiddleware  # noqa: E402

from utils.logger import setup_logging, RequestContextLogMiddleware  # noqa: E402

setup_logging()

from db.database import engine  # noqa: E402
from db.setup_db import setup_tables  # noqa: E402
from routers.dashboard import router as dashboard_router  # noqa: E402
from routers.forms import router as forms_router  # noqa: E402
from routers.health import router as health_router  # noqa: E402
from routers.submissions import router as submissions_router  # noqa: E402
from utils.email import build_email_provider  # noqa: E402
from utils.errors import AppError  # noqa: E402
from utils.limiter import limiter  # noqa: E402

logger = logging.getLogger("ontheform")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.getenv("DB_AUTO_CREATE", "false").lower() in ("1", "true", "yes", "on"):
        await setup_tables()
    # Fails fast on an unknown EMAIL_PROVIDER
    app.state.email_provider = build_email_provider()
    yield
    await engine.dispose()


app = FastAPI(title="OnTheForm API", lifespan=lifespan)


# Production-safe error responses
def _is_production() -> bool:
    return (os.getenv("ENV") or os.getenv("APP_ENV") or "").lower() == "production"


def _safe_message(status_code: int) -> str:
    mapping = {
        400: "Invalid request.",
        401: "Unauthorized.",
        403: "Action not allowed.",
        404: "Not found.",
        405: "Method not allowed.",
        409: "Conflict.",
        413: "Request too large.",
        422: "Invalid request.",
        429: "Too many requests.",
        500: "Something went wrong. Please try again.",
        503: "Service unavailable. Please try again.",
    }
    return mapping.get(int(status_code or 500), "Something went wrong. Please try again.")


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    # Domain errors carry client-safe messages by construction
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_sanitizer(request: Request, exc: HTTPException):
    if _is_production() or not exc.detail:
        # Preserve status code; sanitize message
        return JSONResponse(status_code=exc.status_code, content={"detail": _safe_message(exc.status_code)})
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Request validation failed %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=422,
        content={"error": _safe_message(422), "code": "INVALID_REQUEST"},
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"error": "Too many submissions, please try again later.", "code": "RATE_LIMIT_EXCEEDED"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": _safe_message(500), "code": "INTERNAL_ERROR"})


app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# CORS allowed origins: env override (CORS_ALLOWED_ORIGINS comma-separated), else any origin
_origins = [o.strip() for o in (os.getenv("CORS_ALLOWED_ORIGINS") or "").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins or ["*"],
    allow_credentials=bool(_origins),  # Must be False when allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request/response logging middleware
app.add_middleware(RequestContextLogMiddleware)

app.include_router(health_router)
app.include_router(forms_router)
app.include_router(submissions_router)
app.include_router(dashboard_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
