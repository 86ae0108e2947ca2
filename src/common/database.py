"""Storage for managed hosts and their registered Ansible paths.

Provides:
- engine: Bound to DATABASE_URL (PostgreSQL in deployment, SQLite in tests)
- SessionLocal: Session factory used by the path registry and host directory
- Base: Declarative base for ManagedHost and AnsiblePath
- get_db: Request-scoped session for the ansible API routes
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import Config

config = Config()

# No connection is made until the first session is opened
engine = create_engine(config.DATABASE_URL, pool_pre_ping=True)

# The path registry commits after each write.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield one session per API request and close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
