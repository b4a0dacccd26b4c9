"""Dagster test fixtures.

Provides resources that hand billing ops the test database session and the
in-memory payment gateway instead of PostgreSQL and PayPlus.
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import pytest
from dagster import build_op_context
from sqlalchemy.orm import Session

from quickshop.dagster.resources import DatabaseResource, PaymentGatewayResource
from quickshop.operations.billing import PaymentGateway


class MockDatabaseResource(DatabaseResource):
  """Database resource yielding an existing test session."""

  def __init__(self, session: Session):
    super().__init__(database_url="sqlite://")
    self._session = session

  def setup_for_execution(self, context: Any) -> None:
    """Skip actual database setup in tests."""
    pass

  @contextmanager
  def get_session(self) -> Generator[Session]:
    yield self._session


class MockPaymentGatewayResource(PaymentGatewayResource):
  """Gateway resource yielding a preconfigured gateway."""

  def __init__(self, gateway: PaymentGateway):
    super().__init__()
    self._gateway = gateway

  @contextmanager
  def get_gateway(self) -> Generator[PaymentGateway]:
    yield self._gateway


@pytest.fixture
def mock_db_resource(db_session):
  return MockDatabaseResource(db_session)


@pytest.fixture
def mock_gateway_resource(gateway):
  return MockPaymentGatewayResource(gateway)


@pytest.fixture
def op_context():
  """Create a Dagster op execution context for testing."""
  return build_op_context()
