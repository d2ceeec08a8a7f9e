"""
Counter service - atomic sequential id allocation.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vmregistry.core.exceptions import BackendUnavailableException, NotFoundException
from vmregistry.models.image import Counter

logger = logging.getLogger(__name__)

# First id handed out for a freshly configured entity
FLOOR = 1

# Attempts of the compare-and-swap fallback before giving up
MAX_CAS_RETRIES = 10


class CounterStore:
    """
    Per-entity id sequences kept in the ``counters`` table.

    Allocation is a single ``UPDATE ... RETURNING`` statement, so concurrent
    callers on separate sessions always receive distinct ids with no gaps.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def configure(self, entity: str) -> None:
        """
        Create the counter for ``entity`` if it does not exist yet.

        Safe to call on every startup. A concurrent insert of the same row is
        tolerated.
        """
        existing = await self.db.scalar(select(Counter.entity).where(Counter.entity == entity))
        if existing is not None:
            return

        try:
            async with self.db.begin_nested():
                self.db.add(Counter(entity=entity, next_id=FLOOR))
        except IntegrityError:
            logger.debug("Counter '%s' was configured concurrently", entity)
            return
        logger.info("Configured counter '%s' starting at %d", entity, FLOOR)

    async def allocate(self, entity: str) -> int:
        """
        Allocate the next id for ``entity``.

        Returns:
            The value of ``next_id`` before the increment

        Raises:
            NotFoundException: If the counter was never configured
            BackendUnavailableException: If the fallback loop keeps losing races
        """
        dialect = self.db.get_bind().dialect
        if not dialect.update_returning:
            return await self._allocate_cas(entity)

        stmt = (
            update(Counter)
            .where(Counter.entity == entity)
            .values(next_id=Counter.next_id + 1)
            .returning(Counter.next_id)
            .execution_options(synchronize_session=False)
        )
        value = (await self.db.execute(stmt)).scalar_one_or_none()
        if value is None:
            raise self._not_configured(entity)
        return value - 1

    async def _allocate_cas(self, entity: str) -> int:
        for attempt in range(1, MAX_CAS_RETRIES + 1):
            current = await self.db.scalar(select(Counter.next_id).where(Counter.entity == entity))
            if current is None:
                raise self._not_configured(entity)

            stmt = (
                update(Counter)
                .where(Counter.entity == entity, Counter.next_id == current)
                .values(next_id=current + 1)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            if result.rowcount == 1:
                return current
            logger.warning("Counter '%s' changed concurrently, retrying (attempt %d)", entity, attempt)

        raise BackendUnavailableException(
            message=f"Could not allocate an id for '{entity}'",
            details={"entity": entity, "attempts": MAX_CAS_RETRIES},
        )

    @staticmethod
    def _not_configured(entity: str) -> NotFoundException:
        return NotFoundException(
            message=f"No counter configured for '{entity}'",
            details={"entity": entity},
        )
