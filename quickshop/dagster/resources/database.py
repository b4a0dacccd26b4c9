"""PostgreSQL database resource for Dagster.

Provides database session management for Dagster billing jobs, matching the
session settings used by the rest of the QuickShop codebase.
"""

from collections.abc import Generator
from contextlib import contextmanager

from dagster import ConfigurableResource, InitResourceContext
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from quickshop.database import get_database_url


class DatabaseResource(ConfigurableResource):
  """PostgreSQL database resource for Dagster operations."""

  database_url: str = ""

  def setup_for_execution(self, context: InitResourceContext) -> None:
    """Initialize the database engine on resource setup."""
    url = self.database_url or get_database_url()
    self._engine = create_engine(url, pool_pre_ping=True)
    self._session_factory = sessionmaker(bind=self._engine, autoflush=False)

  @contextmanager
  def get_session(self) -> Generator[Session]:
    """Get a database session context manager.

    Yields:
        SQLAlchemy session that commits on success, rolls back on error.

    Example:
        ```python
        @op
        def my_op(context, db: DatabaseResource):
            with db.get_session() as session:
                due = StoreSubscription.get_billable(session)
        ```
    """
    session = self._session_factory()
    try:
      yield session
      session.commit()
    except Exception:
      session.rollback()
      raise
    finally:
      session.close()
