# main.py

import logging
import os
import pathlib
from dotenv import load_dotenv

# ─── 1) Load .env before ANYTHING else that reads environment vars ───
env_path = pathlib.Path(__file__).parent / ".env"
if not env_path.exists():
    env_path = pathlib.Path(__file__).parent.parent / ".env"

if env_path.exists():
    logging.basicConfig(level=logging.INFO)
    logging.getLogger(__name__).info(f"Loading .env from {env_path}")
    load_dotenv(dotenv_path=env_path)
else:
    logging.basicConfig(level=logging.WARNING)
    logging.getLogger(__name__).warning(".env not found; expecting system env vars")

# ─── 2) Validate required env vars ───
R2_ENV_VARS = [
    "CF_ACCESS_KEY_ID",
    "CF_SECRET_ACCESS_KEY",
    "CLOUDFLARE_R2_BUCKET",
    "CLOUDFLARE_R2_ENDPOINT",
    "CLOUDFLARE_WORKER_URL",
]


def missing_env_vars():
    missing = []
    if not os.getenv("DATABASE_URL") and not os.getenv("DB_HOST"):
        missing.append("DATABASE_URL")
    if os.getenv("STORAGE_BACKEND", "local").lower() == "r2":
        missing.extend(v for v in R2_ENV_VARS if not os.getenv(v))
    return missing


def check_required_env():
    missing = missing_env_vars()
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


check_required_env()

# ─── 3) Now safe to import modules that use DATABASE_URL ➔ socio.database ───
from fastapi import FastAPI, Request, status, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.staticfiles import StaticFiles
from socio.database import engine
from socio import models, storage
from socio.routes import users, events, fests, registrations, attendance, notifications, uploads

# ─── 4) Create and configure FastAPI ───
logger = logging.getLogger(__name__)
app = FastAPI(title="SOCIO Events API")

cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()] or ["*"]
allow_any_origin = cors_origins == ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=not allow_any_origin,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
)


def cors_headers(request: Request):
    origin = request.headers.get("origin")
    if allow_any_origin:
        return {"Access-Control-Allow-Origin": "*"}
    if origin and origin in cors_origins:
        return {"Access-Control-Allow-Origin": origin, "Access-Control-Allow-Credentials": "true", "Vary": "Origin"}
    return {}


# ─── 5) Exception handlers keep the {"detail": ...} shape and CORS headers ───
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers={**cors_headers(request), **(exc.headers or {})},
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Request validation failed on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
        headers=cors_headers(request),
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
        headers=cors_headers(request),
    )

# ─── 6) Mount routers and local uploads ───
for router in (users, events, fests, registrations, attendance, notifications, uploads):
    app.include_router(router.router)

if storage.storage_backend() == "local":
    os.makedirs(storage.upload_dir(), exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=storage.upload_dir()), name="uploads")
    logger.info(f"Serving local uploads from {storage.upload_dir()}")

# ─── 7) Initialize DB ───
try:
    models.Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")
except Exception as e:
    logger.error(f"Error creating database tables: {e}")
    raise

@app.get("/")
def home():
    return {"message": "Welcome to SOCIO Events API"}
