#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Durable checkout session storage for the UCP gateway.

This module provides an optional SQLAlchemy-backed session repository using
SQLite via aiosqlite. Records are stored as JSON alongside their status so
the table can be inspected without loading the model.

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup.
- WAL Mode: Enables SQLite Write-Ahead Logging.
- `SqlSessionRepository`: Implements `session_store.SessionRepository`.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import Column
from sqlalchemy import JSON
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from .models import CheckoutSessionRecord

logger = logging.getLogger(__name__)

SessionBase = declarative_base()


class DatabaseManager:
  """Manages the sessions database engine and session factory."""

  def __init__(self) -> None:
    self.engine: Optional[AsyncEngine] = None
    self.session_factory: Optional[sessionmaker] = None

  async def init_db(self, db_path: str) -> None:
    """Initializes the database engine and creates tables."""
    url = f"sqlite+aiosqlite:///{db_path}"
    self.engine = create_async_engine(url, echo=False)

    async with self.engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.engine.begin() as conn:
      await conn.run_sync(SessionBase.metadata.create_all)
    logger.info("Checkout session database ready at %s", db_path)

  async def close(self) -> None:
    """Closes the database engine."""
    if self.engine:
      await self.engine.dispose()
      self.engine = None
      self.session_factory = None


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class CheckoutSessionRow(SessionBase):
  __tablename__ = "checkout_sessions"

  id = Column(String, primary_key=True)
  status = Column(String, index=True)
  updated_at = Column(String)
  # SQLAlchemy JSON type handles serialization automatically
  data = Column(JSON)


async def save_checkout_session(
    session: AsyncSession,
    session_id: str,
    status: str,
    updated_at: str,
    data: Dict[str, Any],
) -> None:
  """Saves or updates a checkout session row."""
  existing = await session.get(CheckoutSessionRow, session_id)
  if existing:
    existing.status = status
    existing.updated_at = updated_at
    existing.data = data
  else:
    session.add(
        CheckoutSessionRow(
            id=session_id, status=status, updated_at=updated_at, data=data
        )
    )


async def get_checkout_session(
    session: AsyncSession, session_id: str
) -> Optional[Dict[str, Any]]:
  """Retrieves a checkout session row's data by ID."""
  result = await session.get(CheckoutSessionRow, session_id)
  if result:
    return result.data
  return None


class SqlSessionRepository:
  """Session repository backed by a `DatabaseManager`.

  The manager may be initialized after the repository is created (the server
  lifespan does so); it must be ready before the first request.
  """

  def __init__(self, db_manager: DatabaseManager):
    self._db_manager = db_manager

  def _session_factory(self) -> AsyncSession:
    if self._db_manager.session_factory is None:
      raise RuntimeError("Checkout session database is not initialized")
    return self._db_manager.session_factory()

  async def get(self, session_id: str) -> Optional[CheckoutSessionRecord]:
    async with self._session_factory() as session:
      data = await get_checkout_session(session, session_id)
    if data is None:
      return None
    return CheckoutSessionRecord.model_validate(data)

  async def save(self, record: CheckoutSessionRecord) -> None:
    async with self._session_factory() as session:
      await save_checkout_session(
          session,
          record.id,
          record.status.value,
          record.updated_at.isoformat(),
          record.model_dump(mode="json"),
      )
      await session.commit()
