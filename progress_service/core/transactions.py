"""
Per-user serialization and transaction handling for the progress engine.

Every mutating operation runs as one unit:
- a per-user asyncio.Lock serializes writers for the same user in-process
- one session + transaction, committed on success, rolled back on error
- ConflictRetryableError (and unique-constraint races) re-run the whole
  operation up to ``max_attempts`` times
- other integrity violations (FK, CHECK) are terminal InvalidInputError
- any other SQLAlchemy failure surfaces as StorageUnavailableError
"""
import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from progress_service.errors import ConflictRetryableError, InvalidInputError, StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar('T')

UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(error: IntegrityError) -> bool:
    """True for duplicate-key errors (PostgreSQL SQLSTATE 23505 or SQLite UNIQUE failures)"""
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate == UNIQUE_VIOLATION_SQLSTATE
    message = str(orig)
    return "UNIQUE constraint failed" in message or "duplicate key value" in message


class UserLockRegistry:
    """One asyncio.Lock per user id; unused locks are garbage-collected"""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self.get(user_id)
        async with lock:
            yield


class TransactionRunner:
    """Runs engine operations inside a serialized, retried transaction"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_attempts: int = 3,
        locks: UserLockRegistry = None
    ):
        self.session_factory = session_factory
        self.max_attempts = max(1, max_attempts)
        self.locks = locks or UserLockRegistry()

    async def run(self, user_id: str, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Execute ``operation(session)`` as a single transaction for ``user_id``.

        Raises:
            ConflictRetryableError: still conflicting after max_attempts
            StorageUnavailableError: datastore failure
            ProgressServiceError subclasses raised by the operation
        """
        async with self.locks.hold(user_id):
            attempt = 1
            while True:
                try:
                    return await self._execute(operation)
                except ConflictRetryableError as e:
                    if attempt >= self.max_attempts:
                        logger.warning(
                            f"Giving up on user {user_id} after {attempt} conflicting attempts: {e.message}"
                        )
                        raise
                    logger.info(f"Conflict for user {user_id} (attempt {attempt}), retrying")
                    attempt += 1

    async def read(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Execute a read-only operation; no lock, no retry"""
        return await self._execute(operation)

    async def _execute(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await operation(session)
        except IntegrityError as e:
            if is_unique_violation(e):
                # unique (user, chapter) / (user, achievement) race with another writer
                logger.warning(f"Integrity conflict: {str(e.orig)}")
                raise ConflictRetryableError("Concurrent modification detected. Please retry.") from e
            # FK or CHECK violation: retrying cannot succeed
            logger.warning(f"Constraint violation: {str(e.orig)}")
            raise InvalidInputError("Write rejected by a data constraint") from e
        except SQLAlchemyError as e:
            logger.error(f"Storage error: {str(e)}", exc_info=True)
            raise StorageUnavailableError("Storage temporarily unavailable") from e
