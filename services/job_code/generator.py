"""
services/job_code/generator.py
Human-readable sequential job codes: MON-###-YYYY (e.g. FEB-007-2026).

One counter per facility-local calendar month, advanced by a single
INSERT … ON CONFLICT DO UPDATE … RETURNING. Serialization failures and
deadlocks are retried a bounded number of times; nothing else is.
"""

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from config.settings import settings
from shared.exceptions import CounterNotFound, TransientStorageError
from shared.models.models import JobCodeCounter
from shared.utils.time_utils import Clock, facility_tz, utcnow

logger = logging.getLogger(__name__)

MONTH_ABBREV = [
    "JAN", "FEB", "MAR", "APR", "MAY", "JUN",
    "JUL", "AUG", "SEP", "OCT", "NOV", "DEC",
]

JOB_CODE_PATTERN = re.compile(r"^([A-Z]{3})-(\d{3,})-(\d{4})$")

# (year, month) → new counter value, or None if the upsert returned nothing
CounterIncrement = Callable[[int, int], Awaitable[Optional[int]]]


@dataclass(frozen=True)
class ParsedJobCode:
    month: str
    counter: int
    year: int


def format_job_code(year: int, month: int, counter: int) -> str:
    return f"{MONTH_ABBREV[month - 1]}-{counter:03d}-{year}"


def parse_job_code(code: str) -> Optional[ParsedJobCode]:
    match = JOB_CODE_PATTERN.match(code or "")
    if not match:
        return None
    month, counter, year = match.groups()
    if month not in MONTH_ABBREV:
        return None
    return ParsedJobCode(month=month, counter=int(counter), year=int(year))


# ── Retry policy ──────────────────────────────────────────────

def is_transient_storage_error(exc: BaseException) -> bool:
    if isinstance(exc, TransientStorageError):
        return True
    if isinstance(exc, CounterNotFound):
        return False
    message = str(exc).lower()
    return "serialization" in message or "deadlock" in message


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(f"Job code attempt {state.attempt_number} hit transient error, retrying: {exc}")


def transient_retry(
    max_attempts: int = settings.JOB_CODE_MAX_ATTEMPTS,
    delay: float = settings.JOB_CODE_RETRY_DELAY_SECONDS,
    predicate: Callable[[BaseException], bool] = is_transient_storage_error,
) -> AsyncRetrying:
    """
    Retry combinator: up to `max_attempts` tries, waiting delay × attempt
    between them, only for errors `predicate` accepts. The last error is re-raised.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=delay, increment=delay),
        retry=retry_if_exception(predicate),
        before_sleep=_log_retry,
        reraise=True,
    )


# ── Storage ───────────────────────────────────────────────────

def sql_counter_increment(session_factory: async_sessionmaker[AsyncSession]) -> CounterIncrement:
    """Counter increment backed by job_code_counters, one transaction per call."""

    async def increment(year: int, month: int) -> Optional[int]:
        async with session_factory() as session:
            async with session.begin():
                dialect = session.bind.dialect.name
                insert = pg_insert if dialect == "postgresql" else sqlite_insert
                stmt = (
                    insert(JobCodeCounter)
                    .values(year=year, month=month, counter=1)
                    .on_conflict_do_update(
                        index_elements=["year", "month"],
                        set_={"counter": JobCodeCounter.counter + 1},
                    )
                    .returning(JobCodeCounter.counter)
                )
                return (await session.execute(stmt)).scalar_one_or_none()

    return increment


# ── Generator ─────────────────────────────────────────────────

class JobCodeGenerator:
    def __init__(
        self,
        increment: CounterIncrement,
        clock: Clock = utcnow,
        max_attempts: int = settings.JOB_CODE_MAX_ATTEMPTS,
        retry_delay: float = settings.JOB_CODE_RETRY_DELAY_SECONDS,
    ):
        self.increment = increment
        self.clock = clock
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    async def _next_counter(self, year: int, month: int) -> int:
        counter = await self.increment(year, month)
        if counter is None:
            raise CounterNotFound()
        return counter

    async def generate(self) -> str:
        local = self.clock().astimezone(facility_tz())
        year, month = local.year, local.month

        async for attempt in transient_retry(self.max_attempts, self.retry_delay):
            with attempt:
                counter = await self._next_counter(year, month)

        code = format_job_code(year, month, counter)
        logger.info(f"Issued job code {code}")
        return code
