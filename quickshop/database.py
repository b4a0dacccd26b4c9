from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from quickshop.config import env


def get_database_url():
  """Get database URL with SSL configuration if needed."""
  database_url = env.DATABASE_URL

  # Add SSL parameters for staging/prod environments
  if (
    (env.is_staging() or env.is_production())
    and database_url
    and "?" not in database_url
  ):
    database_url += "?sslmode=require"
  elif (
    (env.is_staging() or env.is_production())
    and database_url
    and "sslmode" not in database_url
  ):
    database_url += "&sslmode=require"

  return database_url


@lru_cache(maxsize=1)
def get_engine() -> Engine:
  """Create the application engine on first use."""
  return create_engine(
    get_database_url(),
    pool_size=env.DATABASE_POOL_SIZE,
    max_overflow=env.DATABASE_MAX_OVERFLOW,
    pool_timeout=env.DATABASE_POOL_TIMEOUT,
    pool_recycle=env.DATABASE_POOL_RECYCLE,
    pool_pre_ping=True,
    echo=env.DATABASE_ECHO,
  )


SessionFactory = sessionmaker(autocommit=False, autoflush=False)


def create_session() -> Session:
  """Open a session bound to the application engine."""
  return SessionFactory(bind=get_engine())


class Base(DeclarativeBase):
  """Base class for all models."""

  pass


def get_db_session():
  """Get database session for FastAPI dependency injection."""
  db = create_session()
  try:
    yield db
  finally:
    db.close()
