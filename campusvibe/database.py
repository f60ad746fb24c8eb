import os
import logging
from urllib.parse import urlparse

from dotenv import load_dotenv, find_dotenv

# SQLAlchemy imports
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool, StaticPool

# load .env: prefer campusvibe/.env next to this file, fallback to project .env
env_path = os.path.join(os.path.dirname(__file__), ".env")
if not os.path.exists(env_path):
    env_path = find_dotenv()  # try locating a .env in parent folders
load_dotenv(env_path)

logger = logging.getLogger("campusvibe.database")

DEFAULT_DATABASE_URL = "sqlite:///./campusvibe.db"


def resolve_database_url() -> str:
    """
    Resolve the final DATABASE_URL to use.
    Priority:
      1. DATABASE_URL as given (postgres:// is rewritten to postgresql://)
      2. POSTGRES_URL as a fallback for hosted providers
      3. A local SQLite file for development
    """
    raw = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL")
    if not raw:
        logger.warning("DATABASE_URL not set; using local SQLite database")
        return DEFAULT_DATABASE_URL

    raw = raw.strip().strip('"').strip("'")
    if raw.startswith("postgres://"):
        logger.info("Rewrote 'postgres://' -> 'postgresql://' for SQLAlchemy")
        return raw.replace("postgres://", "postgresql://", 1)
    return raw


DATABASE_URL = resolve_database_url()

# Basic validation (do not log secrets)
parsed_url = urlparse(DATABASE_URL)
if not parsed_url.scheme:
    logger.error("Invalid DATABASE_URL format: missing scheme")
    raise ValueError("DATABASE_URL missing required parts")

is_sqlite = DATABASE_URL.startswith("sqlite")

if is_sqlite:
    engine_kwargs = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live on a single connection
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool
elif os.getenv("USE_NULL_POOL", "0") == "1":
    engine_kwargs = {
        "poolclass": NullPool,  # No local pooling - let the hosted pooler handle it
    }
else:
    engine_kwargs = {
        "pool_size": 10,
        "max_overflow": 5,
        "pool_recycle": 300,      # Recycle connections every 5 minutes
        "pool_pre_ping": True,    # Verify connections before use
        "pool_timeout": 30,
    }

try:
    engine = create_engine(DATABASE_URL, **engine_kwargs)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base = declarative_base()
    logger.info(f"Using SQLAlchemy engine for '{parsed_url.scheme}' database")
except Exception as e:
    logger.error(f"Error initializing database: {e}")
    raise
