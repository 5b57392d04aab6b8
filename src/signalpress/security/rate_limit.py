"""Per-user hourly quotas backed by the database.

The check is one conditional upsert::

    INSERT ... VALUES (user, fn, bucket, 1)
    ON CONFLICT (user, fn, bucket) DO UPDATE SET call_count = call_count + 1
    WHERE call_count < :limit

One affected row means the call is allowed. Instances are stateless, so
nothing is counted in process memory. A storage failure fails open.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from signalpress.errors import RateLimitError
from signalpress.storage.database import get_session
from signalpress.storage.models import RateLimitCounter

logger = logging.getLogger(__name__)

# Calls per hour for operations that reach a paid provider
HOURLY_LIMITS: dict[str, int] = {
    "collect-resource": 30,
    "extract-insights": 10,
    "deep-research": 5,  # search-grounded, most expensive per call
    "generate-outline": 10,
    "write-draft": 5,  # long generation
    "analyze-seo": 20,
    "search-news": 20,
}
DEFAULT_LIMIT = 10

_INSERTS = {"sqlite": sqlite_insert, "postgresql": pg_insert}


def hour_bucket(now: datetime) -> str:
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H")


class RateLimiter:
    """Atomic increment-then-compare on a (user, operation, hour) counter."""

    def __init__(
        self,
        db_url: str,
        limits: dict[str, int] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db_url = db_url
        self._limits = dict(HOURLY_LIMITS if limits is None else limits)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def limit_for(self, function_name: str) -> int:
        return self._limits.get(function_name, DEFAULT_LIMIT)

    def check_and_increment(self, user_id: str, function_name: str) -> bool:
        """Count one call and report whether it is within the quota."""
        limit = self.limit_for(function_name)
        bucket = hour_bucket(self._clock())
        try:
            with get_session(self._db_url) as session:
                dialect = session.get_bind().dialect.name
                insert = _INSERTS.get(dialect)
                if insert is None:
                    logger.error("[rate-limit] unsupported dialect %s, not enforcing", dialect)
                    return True
                table = RateLimitCounter.__table__
                stmt = insert(table).values(
                    user_id=user_id,
                    function_name=function_name,
                    hour_bucket=bucket,
                    call_count=1,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c.user_id, table.c.function_name, table.c.hour_bucket],
                    set_={"call_count": table.c.call_count + 1},
                    where=table.c.call_count < limit,
                )
                result = session.execute(stmt)
                session.commit()
                allowed = result.rowcount == 1
        except SQLAlchemyError as e:
            # Availability over quota precision
            logger.error("[rate-limit] DB error for %s: %s", function_name, e)
            return True

        if not allowed:
            logger.info("[rate-limit] %s over %d/h for user %s", function_name, limit, user_id)
        return allowed

    def enforce(self, user_id: str, function_name: str) -> None:
        """Raise RateLimitError when the call exceeds the quota."""
        if not self.check_and_increment(user_id, function_name):
            raise RateLimitError(function_name, self.limit_for(function_name))
