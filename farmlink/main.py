from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from farmlink.database import close_db, get_db, init_db

# ENV
from farmlink.config.env import CORS_ALLOWED_ORIGINS, ENV, LOG_LEVEL, validate_production_env
from farmlink.utils.indexes import ensure_indexes

# ROUTES
from farmlink.routes.auth import router as auth_router
from farmlink.routes.products import router as products_router
from farmlink.routes.orders import router as orders_router
from farmlink.routes.bulk_requests import router as bulk_requests_router
from farmlink.routes.reviews import router as reviews_router
from farmlink.routes.payments import router as payments_router
from farmlink.routes.chat import router as chat_router
from farmlink.routes.admin import router as admin_router

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("farmlink")


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_production_env()
    db = init_db()
    await ensure_indexes(db)
    logger.info("STARTUP env=%s", ENV)
    yield
    close_db()


app = FastAPI(
    title="FarmLink API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if ENV == "production" else "/docs",
    redoc_url=None if ENV == "production" else "/redoc",
    openapi_url=None if ENV == "production" else "/openapi.json",
)

# -----------------------------
# CORS
# -----------------------------

allowed_origins = [origin.strip() for origin in CORS_ALLOWED_ORIGINS if origin.strip()]
if not allowed_origins:
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# ERROR ENVELOPE
# -----------------------------

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("UNHANDLED_ERROR path=%s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )

# -----------------------------
# ROUTES
# -----------------------------

app.include_router(auth_router, prefix="/api")
app.include_router(products_router, prefix="/api")
app.include_router(orders_router, prefix="/api")
app.include_router(bulk_requests_router, prefix="/api")
app.include_router(reviews_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
app.include_router(admin_router, prefix="/api")

# -----------------------------
# HEALTH CHECKS
# -----------------------------

@app.get("/api/health")
async def health():
    return {"success": True, "status": "ok"}


@app.get("/api/health/db")
async def health_db(db=Depends(get_db)):
    await db.command("ping")
    return {"success": True, "status": "mongodb connected"}
