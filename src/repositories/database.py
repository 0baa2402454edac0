"""
SQL engine and schema shared by the session, ticket, counter and audit
repositories.

SQLite is the zero-setup default; any SQLAlchemy URL works (Postgres in
deployed environments, with credentials optionally pulled from Secrets
Manager).
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from typing import Iterator, Optional

import boto3
from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool

from utils.error_handling import StorageError
from utils.logging_config import get_logger

logger = get_logger(__name__)

metadata = MetaData()

sessions = Table(
    "sessions",
    metadata,
    Column("user_id", String(64), primary_key=True),
    Column("state", String(32), nullable=False),
    Column("draft", Text, nullable=True),
    Column("last_activity", DateTime, nullable=False, index=True),
    Column("created_at", DateTime, nullable=False),
)

ticket_records = Table(
    "ticket_records",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("requester_id", String(64), nullable=False, index=True),
    Column("title", String(100), nullable=False),
    Column("description", Text, nullable=False),
    Column("label", String(16), nullable=False),
    Column("priority", String(16), nullable=False),
    Column("status", String(16), nullable=False, index=True),
    Column("tracker_id", String(64)),
    Column("tracker_identifier", String(32)),
    Column("tracker_url", Text),
    Column("created_at", DateTime, nullable=False),
    Column("submitted_at", DateTime),
    Index("ix_ticket_records_title_created", "title", "created_at"),
)

rate_counters = Table(
    "rate_counters",
    metadata,
    Column("user_id", String(64), primary_key=True),
    Column("tickets_today", Integer, nullable=False, default=0),
    Column("tickets_total", Integer, nullable=False, default=0),
    Column("updated_at", DateTime, nullable=False),
)

audit_log = Table(
    "audit_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("action", String(32), nullable=False),
    Column("details", Text),
    Column("created_at", DateTime, nullable=False, index=True),
)


def create_db_engine(db_url: str) -> Engine:
    """Build an engine suited to the URL's backend."""
    if db_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise each checkout sees an empty DB.
            return create_engine(db_url, connect_args=connect_args, poolclass=StaticPool)
        _ensure_sqlite_dir(db_url)
        return create_engine(db_url, connect_args=connect_args)

    return create_engine(
        db_url,
        poolclass=QueuePool,
        pool_size=2,
        max_overflow=4,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def _ensure_sqlite_dir(db_url: str) -> None:
    path = db_url.split("///", 1)[-1]
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)


def resolve_db_url(configured_url: str) -> str:
    """An explicit DATABASE_URL wins, then an RDS secret, then ``configured_url``."""
    if os.environ.get("DATABASE_URL"):
        return configured_url
    secret_arn = os.environ.get("DB_SECRET_ARN")
    if secret_arn:
        secret_url = _secret_to_db_url(secret_arn)
        if secret_url:
            return secret_url
        logger.warning("DB secret unusable; falling back to default database")
    return configured_url


def _secret_to_db_url(secret_arn: str) -> Optional[str]:
    """Build a SQLAlchemy URL from an RDS secret."""
    try:
        sm = boto3.client("secretsmanager")
        secret = json.loads(sm.get_secret_value(SecretId=secret_arn)["SecretString"])
        host = secret.get("host")
        port = secret.get("port", 5432)
        username = secret.get("username")
        password = secret.get("password")
        dbname = secret.get("dbname", "postgres")
        if not (host and username and password):
            return None
        return f"postgresql+psycopg2://{username}:{password}@{host}:{port}/{dbname}"
    except Exception as exc:
        logger.warning("Failed to load DB secret", extra={"error": str(exc)})
        return None


def init_schema(engine: Engine) -> None:
    """Create any missing tables and indexes."""
    metadata.create_all(engine)
    logger.info("Database schema initialized", extra={"dialect": engine.dialect.name})


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver failures as StorageError, keeping the cause chained."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage operation failed", extra={"operation": operation, "error": str(exc)})
        raise StorageError(f"Storage operation failed: {operation}") from exc
