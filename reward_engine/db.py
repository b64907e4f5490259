import os
import uuid
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv
import urllib.parse

from reward_engine.errors import ValidationError

# Load .env file with explicit UTF-8 encoding
load_dotenv(encoding='utf-8')

DEFAULT_DATABASE_URL = "sqlite:///./reward_engine.db"


def normalize_database_url(url: str | None) -> str:
    if not url:
        return DEFAULT_DATABASE_URL
    # urlunparse drops the empty authority of sqlite:/// paths.
    if url.startswith("sqlite"):
        return url
    # Ensure proper encoding by parsing and reconstructing the URL
    try:
        parsed = urllib.parse.urlparse(url)
        return urllib.parse.urlunparse(parsed)
    except ValueError:
        return url.encode('utf-8', errors='replace').decode('utf-8')


DATABASE_URL = normalize_database_url(os.getenv("DATABASE_URL"))


def engine_connect_args(url: str) -> dict:
    if url.startswith("postgres"):
        return {"options": "-c timezone=utc"}
    if url.startswith("sqlite"):
        # Writers wait on the database lock instead of failing immediately.
        return {"check_same_thread": False, "timeout": 30}
    return {}


engine = create_engine(DATABASE_URL, connect_args=engine_connect_args(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def utcnow() -> datetime:
    # Naive UTC, matching the TIMESTAMP columns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def as_uuid(value, field: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"{field} is not a valid UUID")
