"""
E-Permitted Backend — Reference Allocator
==========================================

What:  Produces the next human-readable application reference for a council
       prefix and year: `<PREFIX>-<YYYY>-<5-digit sequence>`.
Who:   Called by ApplicationService.submit() inside the intake transaction.

Allocation Algorithm:
    1. UPDATE reference_counters SET last_sequence = last_sequence + 1
       WHERE prefix = :p AND year = :y RETURNING last_sequence
       → row lock (PostgreSQL) / write lock (SQLite) held until commit, so a
         second allocator for the same pair waits and then sees the new value
    2. No counter row yet → seed it from the highest existing reference
       matching `P-Y-*` (numeric max of the trailing digit run), inside a
       SAVEPOINT. A concurrent seeder hitting the unique constraint rolls back
       its savepoint and falls through to step 1 again.
    3. Sequence above 99999 → ReferenceAllocationError

    Examples:
        no references for KCDC/2024          → KCDC-2024-00001
        latest existing KCDC-2024-00041      → KCDC-2024-00042
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.exceptions import ReferenceAllocationError
from epermitted.models.application import Application, ReferenceCounter

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 5
MAX_SEQUENCE = 10 ** SEQUENCE_WIDTH - 1

REFERENCE_PATTERN = re.compile(r"^[A-Z]+-\d{4}-\d{5}$")


def format_reference(prefix: str, year: int, sequence: int) -> str:
    """Render a reference, e.g. ("KCDC", 2024, 7) → "KCDC-2024-00007"."""
    return f"{prefix}-{year}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(reference: str, prefix: str, year: int) -> Optional[int]:
    """
    Extract the trailing sequence number of a reference for (prefix, year).

    Returns None when the reference belongs to another prefix/year or has no
    trailing digit run.
    """
    match = re.fullmatch(rf"{re.escape(prefix)}-{year}-(\d+)", reference)
    if not match:
        return None
    return int(match.group(1))


class ReferenceAllocator:
    """
    Allocates references through the `reference_counters` table.

    The clock is injectable so tests (and back-dated imports) can pin the year.
    """

    # Attempts at the increment/seed cycle before giving up. Only a seeding
    # race can force another round, so two rounds always suffice in practice.
    MAX_SEED_ROUNDS = 3

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def current_year(self) -> int:
        return self.clock().year

    async def allocate(
        self,
        db: AsyncSession,
        prefix: str,
        year: Optional[int] = None,
    ) -> str:
        """
        Allocate the next reference for `prefix` in `year` (default: this year).

        Must run inside the caller's transaction; the allocation is only final
        once that transaction commits.

        Raises:
            ReferenceAllocationError: the 5-digit sequence space is exhausted
        """
        prefix = prefix.upper()
        year = year or self.current_year()

        for _ in range(self.MAX_SEED_ROUNDS):
            sequence = await self._increment(db, prefix, year)
            if sequence is None:
                sequence = await self._seed(db, prefix, year)
            if sequence is not None:
                break
        else:
            raise ReferenceAllocationError(
                message="Could not initialise the reference counter",
                context={"prefix": prefix, "year": year},
            )

        if sequence > MAX_SEQUENCE:
            logger.error(
                "Reference sequence exhausted for %s-%d (next would be %d)",
                prefix,
                year,
                sequence,
            )
            raise ReferenceAllocationError(
                context={"prefix": prefix, "year": year, "sequence": sequence},
            )

        reference = format_reference(prefix, year, sequence)
        logger.debug("Allocated reference %s", reference)
        return reference

    async def _increment(self, db: AsyncSession, prefix: str, year: int) -> Optional[int]:
        result = await db.execute(
            update(ReferenceCounter)
            .where(ReferenceCounter.prefix == prefix, ReferenceCounter.year == year)
            .values(last_sequence=ReferenceCounter.last_sequence + 1)
            .returning(ReferenceCounter.last_sequence)
        )
        return result.scalar_one_or_none()

    async def _seed(self, db: AsyncSession, prefix: str, year: int) -> Optional[int]:
        """
        Create the counter row for (prefix, year), continuing after the highest
        reference already stored. Returns None if another transaction created
        the row first.
        """
        latest = await self.latest_sequence(db, prefix, year)
        sequence = latest + 1
        try:
            async with db.begin_nested():
                db.add(ReferenceCounter(prefix=prefix, year=year, last_sequence=sequence))
        except IntegrityError:
            logger.info("Reference counter %s-%d created concurrently; retrying", prefix, year)
            return None

        if latest:
            logger.info(
                "Seeded reference counter %s-%d from existing reference sequence %d",
                prefix,
                year,
                latest,
            )
        return sequence

    async def latest_sequence(self, db: AsyncSession, prefix: str, year: int) -> int:
        """Highest sequence among stored references for (prefix, year); 0 if none."""
        result = await db.execute(
            select(Application.reference).where(
                Application.reference.like(f"{prefix}-{year}-%")
            )
        )
        sequences = [
            seq
            for seq in (parse_sequence(ref, prefix, year) for ref in result.scalars())
            if seq is not None
        ]
        return max(sequences, default=0)


# Module-level instance used by the intake service
reference_allocator = ReferenceAllocator()
