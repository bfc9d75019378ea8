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

"""Checkout session storage.

`SessionRepository` abstracts persistence behind async `get`/`save`. The
in-memory repository is the default; `db.SqlSessionRepository` persists
records with SQLAlchemy.

`SessionLocks` hands out one `asyncio.Lock` per session id. Every mutating
checkout operation runs its read-decide-write sequence under that lock, which
makes per-session mutation single-writer. A lock lives only while some task
holds or awaits it, so lookups of unknown ids leave nothing behind.
"""

import asyncio
import contextlib
from typing import AsyncIterator, Dict, Optional, Protocol

from .models import CheckoutSessionRecord


class SessionRepository(Protocol):
  """Minimal persistence interface for session records."""

  async def get(self, session_id: str) -> Optional[CheckoutSessionRecord]:
    ...

  async def save(self, record: CheckoutSessionRecord) -> None:
    ...


class InMemorySessionRepository:
  """Non-persistent repository keyed by session id."""

  def __init__(self) -> None:
    self._sessions: Dict[str, CheckoutSessionRecord] = {}

  async def get(self, session_id: str) -> Optional[CheckoutSessionRecord]:
    record = self._sessions.get(session_id)
    return record.model_copy(deep=True) if record else None

  async def save(self, record: CheckoutSessionRecord) -> None:
    self._sessions[record.id] = record.model_copy(deep=True)


class SessionLocks:
  """Per-session mutual exclusion for a single event loop."""

  def __init__(self) -> None:
    self._locks: Dict[str, asyncio.Lock] = {}
    self._users: Dict[str, int] = {}

  def __len__(self) -> int:
    return len(self._locks)

  @contextlib.asynccontextmanager
  async def hold(self, session_id: str) -> AsyncIterator[None]:
    """Holds the lock of `session_id` for the duration of the block."""
    lock = self._locks.get(session_id)
    if lock is None:
      lock = self._locks[session_id] = asyncio.Lock()
    self._users[session_id] = self._users.get(session_id, 0) + 1
    try:
      async with lock:
        yield
    finally:
      self._users[session_id] -= 1
      if not self._users[session_id]:
        del self._users[session_id]
        del self._locks[session_id]
