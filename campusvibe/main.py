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

# ─── 2) Now safe to import modules that read DATABASE_URL and secrets ───
from fastapi import FastAPI, Request, status, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from campusvibe.database import engine, SessionLocal
from campusvibe import models
from campusvibe.auth_utils import hash_password
from campusvibe.errors import CampusVibeError
from campusvibe.qr_signing import get_signer
from campusvibe.routes import auth, events, discounts, tickets, attendance, waitlist, analytics

# ─── 3) Fail fast on a missing or aliased signing secret in production ───
get_signer()

# ─── 4) Create and configure FastAPI ───
logger = logging.getLogger("campusvibe.main")
app = FastAPI(title="CampusVibe API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# ─── 5) Exception handlers; CORS headers are always included ───
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS, PATCH",
    "Access-Control-Allow-Headers": "*",
}


@app.exception_handler(CampusVibeError)
async def campusvibe_exception_handler(request: Request, exc: CampusVibeError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=CORS_HEADERS
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=CORS_HEADERS
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_errors(exc)},
        headers=CORS_HEADERS
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
        headers=CORS_HEADERS
    )


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# ─── 6) Mount routers ───
for router in (auth, events, discounts, tickets, attendance, waitlist, analytics):
    app.include_router(router.router)


# ─── 7) Initialize DB ───
def seed_admin():
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        return
    email = os.getenv("ADMIN_EMAIL", "admin@campusvibe.app").strip().lower()
    db = SessionLocal()
    try:
        if db.query(models.User).filter(models.User.email == email).first():
            return
        db.add(models.User(
            email=email,
            name="Administrator",
            password_hash=hash_password(password),
            role=models.Role.admin,
        ))
        db.commit()
        logger.info(f"Admin seeded: {email}")
    finally:
        db.close()


try:
    models.Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")
    seed_admin()
except Exception as e:
    logger.error(f"Error creating database tables: {e}")
    raise


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/")
def home():
    return {"message": "Welcome to CampusVibe API"}
