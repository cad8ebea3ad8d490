"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (SQLite in-memory)
- Table definitions for the relational store and the design graph store
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import (
    create_engine, event, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Float,
    Index, ForeignKey, UniqueConstraint,
)
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import os

from flowforge.core.config import settings


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return os.getenv("DATABASE_URL") or settings.DATABASE_URL


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Dispose the current engine (tests swap databases between cases)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on clean exit, rolls back on any exception.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


# Users
users = Table(
    'app_users',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('email', String(255), nullable=False, unique=True),
    Column('name', Text, nullable=True),
    Column('stripe_customer_id', String(100), nullable=True, unique=True),
    # Denormalized quota of the active plan; -1 means unlimited
    Column('max_designs', Integer, nullable=False, server_default='3'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_users_stripe_customer_id', 'stripe_customer_id'),
)

# Subscriptions. At most one ACTIVE row per user, maintained by cancel-then-create.
subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(36), ForeignKey('app_users.id', ondelete='CASCADE'), nullable=False, index=True),
    Column('stripe_subscription_id', String(100), nullable=True, unique=True),
    Column('stripe_price_id', String(100), nullable=True),
    Column('plan_type', String(50), nullable=False),
    Column('status', String(50), nullable=False, index=True),  # ACTIVE, CANCELLED, EXPIRED
    Column('current_period_start', DateTime(timezone=True), nullable=True),
    Column('current_period_end', DateTime(timezone=True), nullable=True),
    Column('cancel_at_period_end', Boolean, nullable=False, default=False),
    Column('expires_at', DateTime(timezone=True), nullable=True),
    Column('last_payment_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Column('ended_at', DateTime(timezone=True), nullable=True),
    Index('idx_subscriptions_user_status', 'user_id', 'status'),
)

# Webhook events (idempotency ledger)
webhook_events = Table(
    'webhook_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('event_id', String(100), nullable=False),
    Column('event_type', String(100), nullable=False, index=True),
    Column('payload', JSON, nullable=True),
    Column('status', String(20), nullable=False, index=True),  # PENDING, PROCESSED, FAILED
    Column('retry_count', Integer, nullable=False, default=0),
    Column('error_message', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('processed_at', DateTime(timezone=True), nullable=True),
    UniqueConstraint('event_id', name='uq_webhook_events_event_id'),
)

# Designs (relational metadata; canvas content lives in the graph tables)
designs = Table(
    'designs',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('title', Text, nullable=False, server_default='Untitled design'),
    Column('visibility', String(20), nullable=False, server_default='PRIVATE'),
    Column('prompt', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_designs_visibility_created', 'visibility', 'created_at'),
)

# Design ownership (many-to-many)
design_owners = Table(
    'design_owners',
    metadata,
    Column('design_id', String(36), ForeignKey('designs.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(36), ForeignKey('app_users.id', ondelete='CASCADE'), nullable=False, index=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('design_id', 'user_id', name='uq_design_owners_design_user'),
)

# Design images (object storage URLs)
design_images = Table(
    'design_images',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('design_id', String(36), ForeignKey('designs.id', ondelete='CASCADE'), nullable=False, index=True),
    Column('user_id', String(36), ForeignKey('app_users.id', ondelete='CASCADE'), nullable=False),
    Column('url', Text, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Graph store: nodes keyed by composite id "<design_id>-<client id>"
graph_nodes = Table(
    'graph_nodes',
    metadata,
    Column('id', String(255), primary_key=True),
    Column('original_id', String(200), nullable=False),
    Column('design_id', String(36), nullable=False),
    Column('user_id', String(36), nullable=True),
    Column('type', String(100), nullable=True),
    Column('position', JSON, nullable=True),
    Column('data', JSON, nullable=True),
    Column('style', JSON, nullable=True),
    Column('class_name', String(255), nullable=True),
    Column('hidden', Boolean, nullable=False, default=False),
    Column('selected', Boolean, nullable=False, default=False),
    Column('dragging', Boolean, nullable=False, default=False),
    Column('width', Float, nullable=True),
    Column('height', Float, nullable=True),
    Column('z_index', Integer, nullable=True),
    Column('seq', Integer, nullable=False, default=0),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_graph_nodes_design_created', 'design_id', 'created_at', 'seq'),
    Index('idx_graph_nodes_user_design', 'user_id', 'design_id'),
)

graph_edges = Table(
    'graph_edges',
    metadata,
    Column('id', String(255), primary_key=True),
    Column('original_id', String(200), nullable=False),
    Column('design_id', String(36), nullable=False),
    Column('user_id', String(36), nullable=True),
    Column('source', String(255), nullable=False),
    Column('target', String(255), nullable=False),
    Column('original_source', String(200), nullable=False),
    Column('original_target', String(200), nullable=False),
    Column('label', Text, nullable=True),
    Column('type', String(100), nullable=True),
    Column('source_handle', String(200), nullable=True),
    Column('target_handle', String(200), nullable=True),
    Column('style', JSON, nullable=True),
    Column('marker_start', JSON, nullable=True),
    Column('marker_end', JSON, nullable=True),
    Column('animated', Boolean, nullable=False, default=False),
    Column('hidden', Boolean, nullable=False, default=False),
    Column('selected', Boolean, nullable=False, default=False),
    Column('data', JSON, nullable=True),
    Column('z_index', Integer, nullable=True),
    Column('seq', Integer, nullable=False, default=0),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_graph_edges_design_created', 'design_id', 'created_at', 'seq'),
    Index('idx_graph_edges_user_design', 'user_id', 'design_id'),
)

# Materialized CONNECTS_TO relationships between node records
graph_relationships = Table(
    'graph_relationships',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('edge_id', String(255), nullable=False, index=True),
    Column('design_id', String(36), nullable=False, index=True),
    Column('source_node_id', String(255), ForeignKey('graph_nodes.id', ondelete='CASCADE'), nullable=False),
    Column('target_node_id', String(255), ForeignKey('graph_nodes.id', ondelete='CASCADE'), nullable=False),
    Column('label', Text, nullable=True),
    Column('original_edge_id', String(200), nullable=True),
)
