import os
import logging
from urllib.parse import urlparse

from dotenv import load_dotenv, find_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# socio/.env wins over a .env found further up the tree
_local_env = os.path.join(os.path.dirname(__file__), ".env")
load_dotenv(_local_env if os.path.exists(_local_env) else find_dotenv(usecwd=True))

logger = logging.getLogger(__name__)

SQLITE_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def resolve_database_url() -> str:
    """
    Work out the SQLAlchemy URL for the configured database.
      - DATABASE_URL is used as given, except mysql:// which is pinned to the PyMySQL driver
      - without DATABASE_URL, a MySQL URL is assembled from DB_HOST/DB_PORT/DB_USER/DB_PASSWORD/DB_NAME
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        if not os.getenv("DB_HOST"):
            raise ValueError(
                "DATABASE_URL not set. Point it at the MySQL database, "
                "e.g. 'mysql://<user>:<pass>@<host>:3306/socio_db'."
            )
        logger.info("DATABASE_URL not set; assembling it from DB_* variables")
        url = "mysql+pymysql://{user}:{password}@{host}:{port}/{name}".format(
            user=os.getenv("DB_USER", "root"),
            password=os.getenv("DB_PASSWORD", ""),
            host=os.getenv("DB_HOST"),
            port=os.getenv("DB_PORT", "3306"),
            name=os.getenv("DB_NAME", "socio_db"),
        )

    url = url.strip().strip('"').strip("'")
    if url.startswith("mysql://"):
        url = "mysql+pymysql://" + url[len("mysql://"):]
    return url


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def check_database_url(url: str) -> None:
    parsed = urlparse(url)
    if not parsed.scheme:
        raise ValueError("DATABASE_URL has no scheme")
    if not is_sqlite(url) and (not parsed.hostname or parsed.path in ("", "/")):
        raise ValueError("DATABASE_URL needs a host and a database name")


def build_engine(url: str):
    """Create an engine with pool settings suited to the backend."""
    if is_sqlite(url):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases only exist on one connection
        if url in SQLITE_MEMORY_URLS:
            options["poolclass"] = StaticPool
        return create_engine(url, **options)
    return create_engine(
        url,
        pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "5")),
        pool_recycle=300,     # MySQL drops idle connections after wait_timeout
        pool_pre_ping=True,
        pool_timeout=30,
    )


try:
    DATABASE_URL = resolve_database_url()
    check_database_url(DATABASE_URL)
except ValueError as e:
    logger.error(f"Invalid database configuration: {e}")
    raise

engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
logger.info(f"Database engine ready (dialect '{engine.dialect.name}'; URL hidden)")


def get_db():
    """Request-scoped session, closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
